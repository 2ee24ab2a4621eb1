"""
Orchestrator — tool-augmented conversation turns.

One turn:
  1. Stage the user message
  2. Send history + advertised tools to the completion backend
  3. Plain assistant message -> done
  4. Tool calls -> dispatch each through the registry, stage the
     tool-role results, go to 2
  5. More than options.max_tool_rounds tool rounds -> ToolLoopExceededError

Staged messages reach the conversation only when the turn succeeds, so a
failed or timed-out turn leaves the history exactly as it found it.

Tool-level failures (unknown tool, bad arguments, implementation crash) are
fed back to the model as "Error: ..." text unless options.strict_tools is
set. Tool timeouts and backend failures always abort the turn.

    orch = ConversationOrchestrator(backend)
    result = await orch.turn(conversation, "What's the weather in Paris?", registry,
                             TurnOptions(max_tool_rounds=3))
"""

from __future__ import annotations

import asyncio
import logging
import time

from toolchat.backends.base import BackendResponse, CompletionBackend
from toolchat.conversation import Conversation
from toolchat.errors import (
    BackendError,
    BackendTimeoutError,
    EmptyResponseError,
    InvalidToolArgumentsError,
    PendingToolCallsError,
    RegistryError,
    ToolError,
    ToolLoopExceededError,
    ToolTimeoutError,
    TurnTimeoutError,
    UnknownToolError,
)
from toolchat.models import (
    Message,
    ReturnMode,
    ToolCallRequest,
    ToolCallResult,
    TurnOptions,
    TurnResult,
)
from toolchat.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ConversationOrchestrator:
    """
    Drives turns against one completion backend.

    Holds no conversation state of its own; callers pass the Conversation
    handle in. Turns on the same conversation are serialised by its lock.
    """

    def __init__(self, backend: CompletionBackend, default_options: TurnOptions | None = None):
        self.backend = backend
        self.default_options = default_options or TurnOptions()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def turn(
        self,
        conversation: Conversation,
        user_message: str,
        registry: ToolRegistry,
        options: TurnOptions | None = None,
    ) -> TurnResult:
        """Append a user message and run it to a final assistant message."""
        options = options or self.default_options
        async with conversation.lock:
            self._check_no_pending(conversation)
            staged = [Message.user(user_message)]
            return await self._run_with_timeout(conversation, staged, registry, options)

    async def resume(
        self,
        conversation: Conversation,
        registry: ToolRegistry,
        options: TurnOptions | None = None,
    ) -> TurnResult:
        """
        Continue after submit_tool_results() answered every outstanding call.
        Used with resolve_tools=False, where the caller runs the tools.
        """
        options = options or self.default_options
        async with conversation.lock:
            self._check_no_pending(conversation)
            return await self._run_with_timeout(conversation, [], registry, options)

    async def submit_tool_results(self, conversation: Conversation, results: list[ToolCallResult]):
        """Answer outstanding tool calls. Unmatched call ids raise, nothing is appended."""
        async with conversation.lock:
            conversation.extend([Message.tool(r.call_id, r.output) for r in results])

    # ------------------------------------------------------------------
    # Turn loop
    # ------------------------------------------------------------------

    @staticmethod
    def _check_no_pending(conversation: Conversation):
        pending = conversation.pending_tool_calls
        if pending:
            raise PendingToolCallsError([c.call_id for c in pending])

    async def _run_with_timeout(
        self,
        conversation: Conversation,
        staged: list[Message],
        registry: ToolRegistry,
        options: TurnOptions,
    ) -> TurnResult:
        if options.turn_timeout is None:
            return await self._run(conversation, staged, registry, options)
        try:
            return await asyncio.wait_for(
                self._run(conversation, staged, registry, options),
                timeout=options.turn_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Turn on %s exceeded %.1fs", conversation.id, options.turn_timeout)
            raise TurnTimeoutError(
                f"Turn exceeded {options.turn_timeout}s",
                backend_name=self.backend.name,
            ) from None

    async def _run(
        self,
        conversation: Conversation,
        staged: list[Message],
        registry: ToolRegistry,
        options: TurnOptions,
    ) -> TurnResult:
        t0 = time.monotonic()
        descriptors = registry.describe_all(options.allowed)
        tools = [d.to_openai_format() for d in descriptors] or None

        backend_rounds = 0
        tool_rounds = 0
        while True:
            response = await self._complete(conversation.messages, staged, tools, options)
            backend_rounds += 1
            calls = response.tool_calls

            if not calls:
                staged.append(Message.assistant(response.content))
                conversation.extend(staged)
                logger.info(
                    "Turn on %s done: %d backend round(s), %d tool round(s), %.0fms",
                    conversation.id, backend_rounds, tool_rounds,
                    (time.monotonic() - t0) * 1000,
                )
                return self._result(response.content, staged, backend_rounds, options)

            staged.append(Message.assistant(response.content, calls))

            if not options.resolve_tools:
                # Passthrough: caller runs the tools and calls resume()
                conversation.extend(staged)
                logger.info(
                    "Turn on %s returning %d unresolved tool call(s)",
                    conversation.id, len(calls),
                )
                result = self._result(response.content, staged, backend_rounds, options)
                result.pending_tool_calls = calls
                return result

            if tool_rounds >= options.max_tool_rounds:
                logger.warning(
                    "Turn on %s: backend still requesting tools after %d round(s): %s",
                    conversation.id, tool_rounds, [c.tool_name for c in calls],
                )
                raise ToolLoopExceededError(options.max_tool_rounds)

            staged.extend(await self._resolve(calls, registry, options))
            tool_rounds += 1

    @staticmethod
    def _result(text: str, staged: list[Message], rounds: int, options: TurnOptions) -> TurnResult:
        history = list(staged) if options.return_mode == ReturnMode.FULL_HISTORY else None
        return TurnResult(final_text=text, history=history, rounds=rounds)

    # ------------------------------------------------------------------
    # Backend
    # ------------------------------------------------------------------

    async def _complete(
        self,
        committed: tuple[Message, ...],
        staged: list[Message],
        tools: list[dict] | None,
        options: TurnOptions,
    ) -> BackendResponse:
        messages = [m.to_openai_format() for m in (*committed, *staged)]
        try:
            if options.backend_timeout is None:
                response = await self.backend.complete(messages, tools)
            else:
                response = await asyncio.wait_for(
                    self.backend.complete(messages, tools),
                    timeout=options.backend_timeout,
                )
        except asyncio.TimeoutError:
            raise BackendTimeoutError(
                f"Backend '{self.backend.name}' exceeded {options.backend_timeout}s",
                backend_name=self.backend.name,
            ) from None

        if not response.ok:
            cls = BackendTimeoutError if response.timed_out else BackendError
            raise cls(
                f"Backend '{response.backend_name or self.backend.name}' failed: {response.error}",
                status_code=response.status_code,
                backend_name=response.backend_name,
            )
        if not response.choices:
            raise EmptyResponseError(f"No response from backend '{self.backend.name}'")
        return response

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def _resolve(
        self,
        calls: list[ToolCallRequest],
        registry: ToolRegistry,
        options: TurnOptions,
    ) -> list[Message]:
        if options.parallel_tool_calls and len(calls) > 1:
            outputs = await asyncio.gather(
                *(self._dispatch(call, registry, options) for call in calls)
            )
        else:
            outputs = [await self._dispatch(call, registry, options) for call in calls]
        return [Message.tool(call.call_id, text) for call, text in zip(calls, outputs)]

    async def _dispatch(self, call: ToolCallRequest, registry: ToolRegistry, options: TurnOptions) -> str:
        """Run one call. Returns the text for the tool-role message."""
        allowed = options.allowed
        try:
            if call.parse_error:
                raise InvalidToolArgumentsError(
                    call.tool_name, f"Malformed arguments for '{call.tool_name}': {call.parse_error}"
                )
            if allowed is not None and call.tool_name not in allowed:
                raise UnknownToolError(call.tool_name, sorted(allowed))
            logger.info("Dispatching tool %s(%s)", call.tool_name, call.arguments)
            return await registry.dispatch(call.tool_name, call.arguments, options.per_tool_timeout)
        except ToolTimeoutError:
            raise
        except (RegistryError, ToolError) as e:
            if options.strict_tools:
                raise
            logger.warning("Tool call %s failed, reporting to model: %s", call.tool_name, e)
            return f"Error: {e}"
