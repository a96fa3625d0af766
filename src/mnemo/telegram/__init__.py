"""Telegram host."""

from .bot import TelegramBot

__all__ = ["TelegramBot"]
