"""Agent loop that answers a chat turn with memory context and todo tools."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from groq import AsyncGroq

from ..logging import JSONLLogger, get_logger
from ..memory.models import AssembledContext
from ..memory.pipeline import format_for_prompt
from ..tools import ToolRegistry
from .prompt import build_system_prompt, format_tool_result

logger = logging.getLogger(__name__)


class StopReason(Enum):
    """Reasons for stopping the agent loop."""

    COMPLETE = "complete"
    MAX_TURNS = "max_turns"
    REPEATED_CALL = "repeated_call"
    CONSECUTIVE_ERRORS = "consecutive_errors"


@dataclass
class AgentConfig:
    """Configuration for the agent loop."""

    model: str = "llama-3.1-70b-versatile"
    max_turns: int = 5
    max_consecutive_errors: int = 3
    max_repeated_calls: int = 2
    temperature: float = 0.7
    max_tokens: int = 500


@dataclass
class AgentResult:
    """Result from running the agent loop."""

    response: str
    stop_reason: StopReason
    turns: int
    tool_calls: list[dict[str, Any]] = field(default_factory=list)


class AgentLoop:
    """Think, act, observe until the model answers without tool calls.

    Two circuit breakers stop a runaway loop: the same tool call repeated
    back to back, and too many failed tool calls in a row.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        config: AgentConfig | None = None,
        groq_client: AsyncGroq | None = None,
        event_log: JSONLLogger | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or AgentConfig()
        self.client = groq_client or AsyncGroq(api_key=os.getenv("GROQ_API_KEY"))
        self.event_log = event_log or get_logger()
        self._last_tool_call: str | None = None
        self._repeated_count = 0
        self._consecutive_errors = 0

    def _reset_state(self) -> None:
        self._last_tool_call = None
        self._repeated_count = 0
        self._consecutive_errors = 0

    def _check_repeated_call(self, tool_call: dict[str, Any]) -> bool:
        call_sig = json.dumps(tool_call, sort_keys=True)
        if call_sig == self._last_tool_call:
            self._repeated_count += 1
            return self._repeated_count >= self.config.max_repeated_calls
        self._last_tool_call = call_sig
        self._repeated_count = 1
        return False

    def _stop(
        self,
        response: str,
        reason: StopReason,
        turns: int,
        tool_calls: list[dict[str, Any]],
        chat_id: str | None,
    ) -> AgentResult:
        self.event_log.log_agent_stop(reason.value, chat_id=chat_id, turns=turns)
        return AgentResult(
            response=response,
            stop_reason=reason,
            turns=turns,
            tool_calls=tool_calls,
        )

    async def run(
        self,
        message: str,
        context: AssembledContext | None = None,
        history: list[dict[str, Any]] | None = None,
        chat_id: str | None = None,
    ) -> AgentResult:
        """Run the agent loop for a user message.

        Args:
            message: The current user message.
            context: Memory context assembled for this turn.
            history: Earlier conversation turns, placed between the system
                prompt and the current message.
            chat_id: Optional chat identifier for the event log.

        Returns:
            AgentResult with response and metadata.
        """
        self._reset_state()
        tools_schema = self.registry.get_tools_schema()

        messages: list[dict[str, Any]] = [
            {
                "role": "system",
                "content": build_system_prompt(tools_schema, format_for_prompt(context)),
            },
        ]
        if history:
            messages.extend(history)
        messages.append({"role": "user", "content": message})

        tool_calls_log: list[dict[str, Any]] = []

        for turn in range(self.config.max_turns):
            # Think
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=messages,
                tools=tools_schema or None,
                tool_choice="auto" if tools_schema else None,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
            assistant_message = response.choices[0].message

            if not assistant_message.tool_calls:
                return self._stop(
                    assistant_message.content or "",
                    StopReason.COMPLETE,
                    turn + 1,
                    tool_calls_log,
                    chat_id,
                )

            # Only fields accepted by the Groq API
            messages.append({
                "role": "assistant",
                "content": assistant_message.content,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.function.name,
                            "arguments": tc.function.arguments,
                        },
                    }
                    for tc in assistant_message.tool_calls
                ],
            })

            for tool_call in assistant_message.tool_calls:
                tool_name = tool_call.function.name
                try:
                    tool_args = json.loads(tool_call.function.arguments or "{}")
                except json.JSONDecodeError:
                    tool_args = {}

                call_record = {"name": tool_name, "args": tool_args}
                tool_calls_log.append(call_record)

                if self._check_repeated_call(call_record):
                    return self._stop(
                        "Stopped: repeated tool call detected",
                        StopReason.REPEATED_CALL,
                        turn + 1,
                        tool_calls_log,
                        chat_id,
                    )

                # Act
                logger.info(f"Executing tool: {tool_name}")
                result = await self.registry.dispatch(tool_name, tool_args)

                if not result.success:
                    self._consecutive_errors += 1
                    if self._consecutive_errors >= self.config.max_consecutive_errors:
                        return self._stop(
                            f"Stopped: {self.config.max_consecutive_errors} consecutive errors",
                            StopReason.CONSECUTIVE_ERRORS,
                            turn + 1,
                            tool_calls_log,
                            chat_id,
                        )
                else:
                    self._consecutive_errors = 0

                # Observe
                messages.append({
                    "role": "tool",
                    "tool_call_id": tool_call.id,
                    "content": format_tool_result(
                        tool_name, result.success, result.output, result.error
                    ),
                })

        return self._stop(
            "Max turns reached",
            StopReason.MAX_TURNS,
            self.config.max_turns,
            tool_calls_log,
            chat_id,
        )
