"""
Exception taxonomy for toolchat.

Two families matter to callers:
  - infrastructure faults (backend down or slow, empty responses, runaway
    tool loops, registry misconfiguration) are raised and abort the turn
  - tool-level domain errors (bad input, no results, out of range) are NOT
    exceptions: tools return them as text and the model sees them

Everything here derives from ToolChatError so the HTTP layer can catch once.
"""

from __future__ import annotations


class ToolChatError(Exception):
    """Base class for all toolchat errors."""


# ---------------------------------------------------------------------------
# Registry / dispatch
# ---------------------------------------------------------------------------

class RegistryError(ToolChatError):
    """Tool registry misconfiguration."""


class DuplicateToolError(RegistryError):
    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' is already registered")
        self.name = name


class UnknownToolError(RegistryError):
    def __init__(self, name: str, available: list[str] | None = None):
        msg = f"Unknown tool '{name}'"
        if available is not None:
            msg += f". Available: {', '.join(available) or 'none'}"
        super().__init__(msg)
        self.name = name


class ToolError(ToolChatError):
    """A tool could not produce its text result."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name


class InvalidToolArgumentsError(ToolError):
    """Arguments do not match the tool's descriptor."""


class ToolExecutionError(ToolError):
    """The tool implementation raised. The cause is chained via __cause__."""


class ToolTimeoutError(ToolError):
    def __init__(self, tool_name: str, timeout: float):
        super().__init__(tool_name, f"Tool '{tool_name}' timed out after {timeout}s")
        self.timeout = timeout


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

class OrchestrationError(ToolChatError):
    """A turn could not be completed."""


class EmptyResponseError(OrchestrationError):
    """Backend returned no choices."""


class BackendError(OrchestrationError):
    def __init__(self, message: str, status_code: int = 0, backend_name: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.backend_name = backend_name


class BackendTimeoutError(BackendError):
    """Backend call (or the whole turn) exceeded its timeout. Never retried here."""


class TurnTimeoutError(BackendTimeoutError):
    """The turn as a whole exceeded options.turn_timeout."""


class ToolLoopExceededError(OrchestrationError):
    def __init__(self, max_rounds: int):
        super().__init__(
            f"Backend kept requesting tools after {max_rounds} round(s)"
        )
        self.max_rounds = max_rounds


# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------

class ConversationError(ToolChatError):
    """Conversation state does not allow the requested operation."""


class UnmatchedToolCallError(ConversationError):
    def __init__(self, call_id: str):
        super().__init__(f"No outstanding tool call with id '{call_id}'")
        self.call_id = call_id


class PendingToolCallsError(ConversationError):
    def __init__(self, call_ids: list[str]):
        super().__init__(
            f"Conversation has unanswered tool calls: {', '.join(call_ids)}"
        )
        self.call_ids = call_ids
