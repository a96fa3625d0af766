"""Mnemo: long-term memory for a conversational assistant."""

__version__ = "0.1.0"
