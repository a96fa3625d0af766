"""Tests for agent loop."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from mnemo.agent import AgentConfig, AgentLoop, StopReason
from mnemo.memory import AssembledContext, Event, SearchHit
from mnemo.tools import Tool, ToolResult, ToolRegistry


class MockTool(Tool):
    """Mock tool for testing."""

    def __init__(self, name: str = "mock", fail: bool = False):
        self._name = name
        self._fail = fail
        self.call_count = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "A mock tool"

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, **kwargs) -> ToolResult:
        self.call_count += 1
        if self._fail:
            return ToolResult(success=False, output="", error="Mock error")
        return ToolResult(success=True, output="Mock output")


def make_mock_response(content: str = None, tool_calls: list = None):
    """Create a mock Groq response."""
    message = MagicMock()
    message.content = content
    message.tool_calls = tool_calls

    choice = MagicMock()
    choice.message = message

    response = MagicMock()
    response.choices = [choice]
    return response


def make_tool_call(tool_id: str, name: str, arguments: str = "{}"):
    """Create a mock tool call."""
    tc = MagicMock()
    tc.id = tool_id
    tc.function = MagicMock()
    tc.function.name = name
    tc.function.arguments = arguments
    return tc


def unique_tool_calls(name: str = "mock"):
    """Side effect producing a distinct tool call on every LLM request."""
    count = 0

    def respond(*args, **kwargs):
        nonlocal count
        count += 1
        return make_mock_response(
            tool_calls=[make_tool_call(str(count), name, f'{{"n": {count}}}')]
        )

    return respond


@pytest.fixture
def registry() -> ToolRegistry:
    reg = ToolRegistry()
    reg.register(MockTool())
    return reg


@pytest.fixture
def mock_client() -> AsyncMock:
    return AsyncMock()


def make_agent(registry, mock_client, event_log, **config) -> AgentLoop:
    return AgentLoop(
        registry,
        config=AgentConfig(**config),
        groq_client=mock_client,
        event_log=event_log,
    )


@pytest.mark.asyncio
async def test_simple_response(registry, mock_client, event_log) -> None:
    """Agent returns the LLM response when no tools are called."""
    mock_client.chat.completions.create.return_value = make_mock_response(
        content="Hello, I'm Mnemo!"
    )

    result = await make_agent(registry, mock_client, event_log).run("Hi", chat_id="42")

    assert result.response == "Hello, I'm Mnemo!"
    assert result.stop_reason == StopReason.COMPLETE
    assert result.turns == 1
    event_log.log_agent_stop.assert_called_once_with("complete", chat_id="42", turns=1)


@pytest.mark.asyncio
async def test_tool_execution(registry, mock_client, event_log) -> None:
    """Agent executes a tool, feeds back the result and continues."""
    mock_client.chat.completions.create.side_effect = [
        make_mock_response(tool_calls=[make_tool_call("1", "mock")]),
        make_mock_response(content="Done!"),
    ]

    result = await make_agent(registry, mock_client, event_log).run("Do something")

    assert result.response == "Done!"
    assert result.stop_reason == StopReason.COMPLETE
    assert result.turns == 2
    assert result.tool_calls == [{"name": "mock", "args": {}}]

    messages = mock_client.chat.completions.create.call_args_list[1].kwargs["messages"]
    assert messages[-2]["role"] == "assistant"
    assert messages[-2]["tool_calls"][0]["function"]["name"] == "mock"
    assert messages[-1] == {
        "role": "tool",
        "tool_call_id": "1",
        "content": "[mock] Success:\nMock output",
    }


@pytest.mark.asyncio
async def test_invalid_tool_arguments_become_empty(registry, mock_client, event_log) -> None:
    mock_client.chat.completions.create.side_effect = [
        make_mock_response(tool_calls=[make_tool_call("1", "mock", "{not json")]),
        make_mock_response(content="Done!"),
    ]

    result = await make_agent(registry, mock_client, event_log).run("Do something")

    assert result.tool_calls == [{"name": "mock", "args": {}}]


@pytest.mark.asyncio
async def test_max_turns(registry, mock_client, event_log) -> None:
    """Agent stops at max_turns."""
    mock_client.chat.completions.create.side_effect = unique_tool_calls()

    agent = make_agent(registry, mock_client, event_log, max_turns=3, max_repeated_calls=10)
    result = await agent.run("Loop forever")

    assert result.stop_reason == StopReason.MAX_TURNS
    assert result.turns == 3
    assert result.response == "Max turns reached"


@pytest.mark.asyncio
async def test_consecutive_errors(mock_client, event_log) -> None:
    """Agent stops after consecutive tool errors."""
    registry = ToolRegistry()
    registry.register(MockTool(fail=True))
    mock_client.chat.completions.create.side_effect = unique_tool_calls()

    agent = make_agent(
        registry, mock_client, event_log, max_consecutive_errors=2, max_repeated_calls=10
    )
    result = await agent.run("Fail")

    assert result.stop_reason == StopReason.CONSECUTIVE_ERRORS
    assert result.turns == 2


@pytest.mark.asyncio
async def test_unknown_tool_counts_as_error(registry, mock_client, event_log) -> None:
    mock_client.chat.completions.create.side_effect = unique_tool_calls("missing")

    agent = make_agent(
        registry, mock_client, event_log, max_consecutive_errors=3, max_repeated_calls=10
    )
    result = await agent.run("Call something odd")

    assert result.stop_reason == StopReason.CONSECUTIVE_ERRORS


@pytest.mark.asyncio
async def test_repeated_calls(registry, mock_client, event_log) -> None:
    """Agent stops on repeated identical calls."""
    mock_client.chat.completions.create.return_value = make_mock_response(
        tool_calls=[make_tool_call("1", "mock", '{"x": 1}')]
    )

    agent = make_agent(registry, mock_client, event_log, max_repeated_calls=2)
    result = await agent.run("Repeat")

    assert result.stop_reason == StopReason.REPEATED_CALL
    assert registry.get("mock").call_count == 1


@pytest.mark.asyncio
async def test_run_with_history(registry, mock_client, event_log) -> None:
    """History sits between the system prompt and the current message."""
    mock_client.chat.completions.create.return_value = make_mock_response(
        content="Based on our conversation, yes!"
    )
    history = [
        {"role": "user", "content": "alice: My name is Alice"},
        {"role": "assistant", "content": "Nice to meet you, Alice!"},
    ]

    await make_agent(registry, mock_client, event_log).run(
        "Do you remember my name?", history=history
    )

    messages = mock_client.chat.completions.create.call_args.kwargs["messages"]
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[1]["content"] == "alice: My name is Alice"
    assert messages[3]["content"] == "Do you remember my name?"


@pytest.mark.asyncio
async def test_run_without_context_has_no_memory_block(registry, mock_client, event_log) -> None:
    mock_client.chat.completions.create.return_value = make_mock_response(content="Hello!")

    await make_agent(registry, mock_client, event_log).run("Hi")

    messages = mock_client.chat.completions.create.call_args.kwargs["messages"]
    assert len(messages) == 2
    assert "<memory>" not in messages[0]["content"]


@pytest.mark.asyncio
async def test_memory_context_in_system_prompt(registry, mock_client, event_log) -> None:
    mock_client.chat.completions.create.return_value = make_mock_response(content="Sure!")
    context = AssembledContext(
        query="what do I like?",
        search_query="user preferences",
        memories=[SearchHit(id="m1", text="Alice likes green tea", distance=0.1)],
        recent_events=[
            Event(id=1, date="2026-10-14T09:00:00.000000+00:00", description="Dentist appointment")
        ],
    )

    await make_agent(registry, mock_client, event_log).run("what do I like?", context=context)

    system = mock_client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
    assert "<memory>" in system
    assert "- Alice likes green tea" in system
    assert "- 2026-10-14: Dentist appointment" in system
    assert system.endswith("</memory>")


@pytest.mark.asyncio
async def test_no_tools_sends_no_tool_schema(mock_client, event_log) -> None:
    mock_client.chat.completions.create.return_value = make_mock_response(content="Hi")

    await make_agent(ToolRegistry(), mock_client, event_log).run("Hi")

    kwargs = mock_client.chat.completions.create.call_args.kwargs
    assert kwargs["tools"] is None
    assert kwargs["tool_choice"] is None
