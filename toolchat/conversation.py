"""
Conversation handle — the history one session owns.

Append-only: messages are never reordered, edited or dropped. The
orchestrator stages a turn's messages and commits them in one extend()
so a failed turn leaves nothing behind.

Not safe for concurrent mutation. Callers that share a conversation across
requests go through `lock` (the orchestrator does this for every turn).
"""

from __future__ import annotations

import asyncio
import logging
from uuid import uuid4

from toolchat.errors import UnmatchedToolCallError
from toolchat.models import Message, ToolCallRequest, ToolCallResult

logger = logging.getLogger(__name__)


class Conversation:
    """Ordered message history plus any tool calls still awaiting results."""

    def __init__(self, system_prompt: str = "", conversation_id: str | None = None):
        self.id = conversation_id or uuid4().hex
        self._messages: list[Message] = []
        self._pending: dict[str, ToolCallRequest] = {}
        self.lock = asyncio.Lock()
        if system_prompt:
            self._messages.append(Message.system(system_prompt))

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(tuple(self._messages))

    @property
    def pending_tool_calls(self) -> list[ToolCallRequest]:
        return list(self._pending.values())

    # ------------------------------------------------------------------
    # Appends
    # ------------------------------------------------------------------

    def append(self, message: Message):
        self.extend([message])

    def extend(self, messages: list[Message]):
        """
        Commit messages in order. Assistant tool calls become outstanding,
        tool messages must answer one. Validated up front: all or nothing.
        """
        pending = dict(self._pending)
        for msg in messages:
            if msg.role == "tool":
                if msg.tool_call_id not in pending:
                    raise UnmatchedToolCallError(msg.tool_call_id)
                del pending[msg.tool_call_id]
            for call in msg.tool_calls:
                pending[call.call_id] = call

        self._messages.extend(messages)
        self._pending = pending

    def add_tool_result(self, result: ToolCallResult):
        """Answer one outstanding tool call."""
        if result.call_id not in self._pending:
            raise UnmatchedToolCallError(result.call_id)
        self.append(Message.tool(result.call_id, result.output))
        logger.debug("Conversation %s: tool result for %s", self.id, result.call_id)

    def __repr__(self) -> str:
        return (
            f"<Conversation id={self.id!r} messages={len(self._messages)} "
            f"pending={len(self._pending)}>"
        )
