"""
Tests for the conversation orchestrator (tool loop, atomic turns, timeouts).
Run with: pytest tests/test_orchestrator.py
"""

import asyncio

import pytest

from stubs import ScriptedBackend, text_response, tool_response
from toolchat.backends.base import BackendResponse
from toolchat.conversation import Conversation
from toolchat.errors import (
    BackendError,
    BackendTimeoutError,
    EmptyResponseError,
    PendingToolCallsError,
    ToolLoopExceededError,
    ToolTimeoutError,
    TurnTimeoutError,
    UnknownToolError,
    UnmatchedToolCallError,
)
from toolchat.models import (
    Message,
    ReturnMode,
    ToolCallResult,
    ToolDescriptor,
    ToolParameter,
    TurnOptions,
)
from toolchat.orchestrator import ConversationOrchestrator
from toolchat.tools.registry import ToolRegistry

ECHO = ToolDescriptor("echo", "Echo text back", (ToolParameter("text"),))


@pytest.fixture
def registry():
    reg = ToolRegistry()
    reg.register(ECHO, lambda args: f"echo:{args['text']}")
    return reg


def _roles(conversation):
    return [m.role for m in conversation.messages]


# ---------------------------------------------------------------------------
# Plain turns
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_no_tool_turn_returns_backend_reply(registry):
    backend = ScriptedBackend([text_response("Hello there")])
    conv = Conversation()

    result = await ConversationOrchestrator(backend).turn(conv, "hi", registry)

    assert result.final_text == "Hello there"
    assert result.history is None
    assert result.rounds == 1
    assert _roles(conv) == ["user", "assistant"]
    assert conv.messages[0].content == "hi"


@pytest.mark.asyncio
async def test_system_prompt_is_first_message_sent(registry):
    backend = ScriptedBackend([text_response("ok")])
    conv = Conversation(system_prompt="Be brief")

    await ConversationOrchestrator(backend).turn(conv, "hi", registry)

    sent = backend.calls[0]["messages"]
    assert sent[0] == {"role": "system", "content": "Be brief"}
    assert sent[1] == {"role": "user", "content": "hi"}


@pytest.mark.asyncio
async def test_history_carries_across_turns(registry):
    backend = ScriptedBackend([text_response("first"), text_response("second")])
    orch = ConversationOrchestrator(backend)
    conv = Conversation()

    await orch.turn(conv, "one", registry)
    await orch.turn(conv, "two", registry)

    contents = [m["content"] for m in backend.calls[1]["messages"]]
    assert contents == ["one", "first", "two"]
    assert len(conv) == 4


# ---------------------------------------------------------------------------
# Tool resolution
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_tool_call_is_resolved_and_fed_back(registry):
    backend = ScriptedBackend([
        tool_response(("echo", {"text": "x"}, "call_1")),
        text_response("done"),
    ])
    conv = Conversation()

    result = await ConversationOrchestrator(backend).turn(
        conv, "echo x", registry, TurnOptions(max_tool_rounds=3)
    )

    assert result.final_text == "done"
    assert result.rounds == 2
    assert _roles(conv) == ["user", "assistant", "tool", "assistant"]
    assert conv.messages[2].tool_call_id == "call_1"
    assert conv.messages[2].content == "echo:x"
    assert backend.calls[0]["tools"][0]["function"]["name"] == "echo"
    assert backend.calls[1]["messages"][-1] == {
        "role": "tool", "content": "echo:x", "tool_call_id": "call_1",
    }
    # Replayed assistant message keeps its tool calls
    assert backend.calls[1]["messages"][1]["tool_calls"][0]["id"] == "call_1"


@pytest.mark.asyncio
async def test_empty_registry_advertises_no_tools():
    backend = ScriptedBackend([text_response("ok")])
    await ConversationOrchestrator(backend).turn(Conversation(), "hi", ToolRegistry())
    assert backend.calls[0]["tools"] is None


@pytest.mark.asyncio
async def test_loop_exceeded_after_one_round_leaves_conversation_unchanged():
    dispatched = []
    reg = ToolRegistry()
    reg.register(ECHO, lambda args: dispatched.append(args) or "again")
    backend = ScriptedBackend([tool_response(("echo", {"text": "x"}, "c1"))])
    conv = Conversation()

    with pytest.raises(ToolLoopExceededError) as exc:
        await ConversationOrchestrator(backend).turn(conv, "loop", reg, TurnOptions(max_tool_rounds=1))

    assert exc.value.max_rounds == 1
    assert len(dispatched) == 1
    assert len(backend.calls) == 2
    assert len(conv) == 0


@pytest.mark.asyncio
async def test_unknown_tool_is_reported_to_model(registry):
    backend = ScriptedBackend([tool_response(("nope", {}, "c1")), text_response("sorry")])
    conv = Conversation()

    result = await ConversationOrchestrator(backend).turn(conv, "q", registry, TurnOptions(max_tool_rounds=2))

    assert result.final_text == "sorry"
    tool_msg = conv.messages[2]
    assert tool_msg.content.startswith("Error: ")
    assert "Unknown tool 'nope'" in tool_msg.content


@pytest.mark.asyncio
async def test_strict_tools_abort_turn(registry):
    backend = ScriptedBackend([tool_response(("nope", {}, "c1")), text_response("sorry")])
    conv = Conversation()

    with pytest.raises(UnknownToolError):
        await ConversationOrchestrator(backend).turn(
            conv, "q", registry, TurnOptions(max_tool_rounds=2, strict_tools=True)
        )
    assert len(conv) == 0


@pytest.mark.asyncio
async def test_malformed_arguments_are_reported(registry):
    backend = ScriptedBackend([tool_response(("echo", "{not json", "c1")), text_response("ok")])
    conv = Conversation()

    await ConversationOrchestrator(backend).turn(conv, "q", registry, TurnOptions(max_tool_rounds=2))

    assert conv.messages[2].content.startswith("Error: Malformed arguments for 'echo'")


@pytest.mark.asyncio
async def test_tool_exception_is_reported_with_message():
    def boom(args):
        raise RuntimeError("kaboom")

    reg = ToolRegistry()
    reg.register(ToolDescriptor("boom"), boom)
    backend = ScriptedBackend([tool_response(("boom", {}, "c1")), text_response("ok")])
    conv = Conversation()

    await ConversationOrchestrator(backend).turn(conv, "q", reg, TurnOptions(max_tool_rounds=2))

    assert conv.messages[2].content == "Error: Tool 'boom' failed: kaboom"


@pytest.mark.asyncio
async def test_allowed_tools_filter_advertising_and_dispatch(registry):
    registry.register(ToolDescriptor("secret"), lambda args: "classified")
    backend = ScriptedBackend([tool_response(("secret", {}, "c1")), text_response("ok")])
    conv = Conversation()

    await ConversationOrchestrator(backend).turn(
        conv, "q", registry, TurnOptions(max_tool_rounds=2, allowed_tools={"echo"})
    )

    assert [t["function"]["name"] for t in backend.calls[0]["tools"]] == ["echo"]
    assert "Unknown tool 'secret'" in conv.messages[2].content


@pytest.mark.asyncio
async def test_full_history_mode_returns_turn_messages(registry):
    backend = ScriptedBackend([
        tool_response(("echo", {"text": "x"}, "c1")),
        text_response("done"),
    ])
    conv = Conversation(system_prompt="sys")

    result = await ConversationOrchestrator(backend).turn(
        conv, "q", registry,
        TurnOptions(max_tool_rounds=2, return_mode=ReturnMode.FULL_HISTORY),
    )

    assert [m.role for m in result.history] == ["user", "assistant", "tool", "assistant"]
    assert result.history[-1].content == "done"


@pytest.mark.asyncio
async def test_parallel_calls_run_together_and_keep_request_order():
    ready = asyncio.Event()

    async def waiter(args):
        await ready.wait()
        return "waited"

    async def setter(args):
        ready.set()
        return "set"

    reg = ToolRegistry()
    reg.register(ToolDescriptor("waiter"), waiter)
    reg.register(ToolDescriptor("setter"), setter)
    backend = ScriptedBackend([
        tool_response(("waiter", {}, "c1"), ("setter", {}, "c2")),
        text_response("ok"),
    ])
    conv = Conversation()

    # Sequential dispatch would block on the waiter until the per-tool timeout
    await ConversationOrchestrator(backend).turn(
        conv, "q", reg,
        TurnOptions(max_tool_rounds=2, parallel_tool_calls=True, per_tool_timeout=2),
    )

    tool_msgs = [m for m in conv.messages if m.role == "tool"]
    assert [(m.tool_call_id, m.content) for m in tool_msgs] == [("c1", "waited"), ("c2", "set")]


@pytest.mark.asyncio
async def test_concurrent_turns_on_one_conversation_are_serialised(registry):
    backend = ScriptedBackend([text_response("a"), text_response("b")], delay=0.02)
    orch = ConversationOrchestrator(backend)
    conv = Conversation()

    await asyncio.gather(orch.turn(conv, "1", registry), orch.turn(conv, "2", registry))

    assert _roles(conv) == ["user", "assistant", "user", "assistant"]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_backend_timeout_leaves_conversation_length_unchanged(registry):
    conv = Conversation()
    conv.extend([Message.user("earlier"), Message.assistant("reply")])
    backend = ScriptedBackend([text_response("late")], delay=0.5)

    with pytest.raises(BackendTimeoutError):
        await ConversationOrchestrator(backend).turn(
            conv, "q", registry, TurnOptions(backend_timeout=0.05)
        )
    assert len(conv) == 2


@pytest.mark.asyncio
async def test_turn_timeout(registry):
    conv = Conversation()
    backend = ScriptedBackend([text_response("late")], delay=0.5)

    with pytest.raises(TurnTimeoutError):
        await ConversationOrchestrator(backend).turn(conv, "q", registry, TurnOptions(turn_timeout=0.05))
    assert len(conv) == 0


@pytest.mark.asyncio
async def test_tool_timeout_aborts_turn():
    async def slow(args):
        await asyncio.sleep(1)
        return "late"

    reg = ToolRegistry()
    reg.register(ToolDescriptor("slow"), slow)
    backend = ScriptedBackend([tool_response(("slow", {}, "c1")), text_response("ok")])
    conv = Conversation()

    with pytest.raises(ToolTimeoutError):
        await ConversationOrchestrator(backend).turn(
            conv, "q", reg, TurnOptions(max_tool_rounds=2, per_tool_timeout=0.05)
        )
    assert len(conv) == 0


@pytest.mark.asyncio
async def test_no_choices_raises_empty_response(registry):
    backend = ScriptedBackend([BackendResponse(ok=True, data={"choices": []})])
    conv = Conversation()

    with pytest.raises(EmptyResponseError):
        await ConversationOrchestrator(backend).turn(conv, "q", registry)
    assert len(conv) == 0


@pytest.mark.asyncio
async def test_backend_failure_raises_backend_error(registry):
    backend = ScriptedBackend([
        BackendResponse(ok=False, status_code=500, error="HTTP 500: down", backend_name="stub"),
    ])

    with pytest.raises(BackendError) as exc:
        await ConversationOrchestrator(backend).turn(Conversation(), "q", registry)
    assert not isinstance(exc.value, BackendTimeoutError)
    assert exc.value.status_code == 500


@pytest.mark.asyncio
async def test_backend_reported_timeout_raises_timeout_error(registry):
    backend = ScriptedBackend([
        BackendResponse(ok=False, error="Timeout after 1s", timed_out=True, backend_name="stub"),
    ])

    with pytest.raises(BackendTimeoutError):
        await ConversationOrchestrator(backend).turn(Conversation(), "q", registry)


# ---------------------------------------------------------------------------
# Passthrough (caller resolves tools)
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_passthrough_submit_and_resume():
    dispatched = []
    reg = ToolRegistry()
    reg.register(ECHO, lambda args: dispatched.append(args) or "server-side")
    backend = ScriptedBackend([
        tool_response(("echo", {"text": "x"}, "c1")),
        text_response("final"),
    ])
    orch = ConversationOrchestrator(backend)
    conv = Conversation()
    options = TurnOptions(resolve_tools=False)

    result = await orch.turn(conv, "q", reg, options)

    assert [c.call_id for c in result.pending_tool_calls] == ["c1"]
    assert [c.call_id for c in conv.pending_tool_calls] == ["c1"]
    assert dispatched == []

    with pytest.raises(PendingToolCallsError):
        await orch.turn(conv, "another", reg, options)

    with pytest.raises(UnmatchedToolCallError):
        await orch.submit_tool_results(conv, [ToolCallResult("wrong", "x")])
    assert len(conv) == 2

    await orch.submit_tool_results(conv, [ToolCallResult("c1", "client-side")])
    assert conv.pending_tool_calls == []

    resumed = await orch.resume(conv, reg, options)
    assert resumed.final_text == "final"
    assert _roles(conv) == ["user", "assistant", "tool", "assistant"]
    assert conv.messages[2].content == "client-side"
