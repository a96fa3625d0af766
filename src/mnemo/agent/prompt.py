"""Prompt builder for the assistant."""

from typing import Any

SYSTEM_PROMPT_BASE = """You are Mnemo, a helpful and friendly assistant with a long-term memory.

Your purpose:
1. Be genuinely helpful and supportive
2. Help manage todos using the available tools
3. Remember conversations and information accurately
4. Keep answers concise but thorough (this is a chat)

You have access to the following tools:
{tools_description}

When the user mentions tasks or things to do, use the todo tools instead of
just acknowledging them.

Reference what you remember about the user naturally, and admit when you
don't know something."""


def build_system_prompt(
    tools_schema: list[dict[str, Any]],
    memory_block: str = "",
) -> str:
    """Build the system prompt with available tools and memory context.

    Args:
        tools_schema: List of tool schemas for the LLM.
        memory_block: Optional XML block with relevant memories and events.

    Returns:
        Complete system prompt string.
    """
    if not tools_schema:
        tools_desc = "No tools available."
    else:
        tools_desc = "\n".join(
            f"- {t['function']['name']}: {t['function']['description']}"
            for t in tools_schema
        )

    prompt = SYSTEM_PROMPT_BASE.format(tools_description=tools_desc)

    if memory_block.strip():
        prompt += "\n\n" + memory_block

    return prompt


def format_tool_result(tool_name: str, success: bool, output: str, error: str | None) -> str:
    """Format a tool result for the conversation."""
    if success:
        return f"[{tool_name}] Success:\n{output}"
    return f"[{tool_name}] Error: {error}"
