"""Reply generation."""

from .loop import AgentConfig, AgentLoop, AgentResult, StopReason
from .prompt import build_system_prompt

__all__ = ["AgentConfig", "AgentLoop", "AgentResult", "StopReason", "build_system_prompt"]
