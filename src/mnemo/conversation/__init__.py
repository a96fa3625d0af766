"""Conversation state shared by the chat path and the scheduler."""

from .cache import CacheConfig, ConversationCache

__all__ = ["CacheConfig", "ConversationCache"]
