"""Tool interface and registry."""

from .base import Tool, ToolResult
from .registry import ToolRegistry

__all__ = ["Tool", "ToolResult", "ToolRegistry"]
