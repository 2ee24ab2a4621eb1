"""
Base completion backend abstraction.
All backends implement this interface so the orchestrator can treat them uniformly.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field

from toolchat.models import ToolCallRequest

logger = logging.getLogger(__name__)


@dataclass
class BackendResponse:
    """Standardized response from any backend."""
    ok: bool
    status_code: int = 200
    data: dict = field(default_factory=dict)
    backend_name: str = ""
    latency_ms: float = 0.0
    error: str = ""
    timed_out: bool = False

    @property
    def choices(self) -> list:
        return self.data.get("choices") or []

    @property
    def message(self) -> dict:
        """First choice's message, or {} when there are no choices."""
        choices = self.choices
        if choices:
            return choices[0].get("message") or {}
        return {}

    @property
    def content(self) -> str:
        """Extract assistant content from response data."""
        return self.message.get("content") or ""

    @property
    def tool_calls(self) -> list[ToolCallRequest]:
        """Tool calls requested by the first choice, in the order given."""
        return [
            ToolCallRequest.from_openai_format(raw)
            for raw in self.message.get("tool_calls") or []
        ]


class CompletionBackend(abc.ABC):
    """
    Abstract base for chat-completion backends.
    Messages and tools go out in OpenAI format.
    """

    def __init__(self, name: str, url: str, timeout: float = 120):
        self.name = name
        self.url = url.rstrip("/")
        self.timeout = timeout

    @abc.abstractmethod
    async def complete(self, messages: list[dict], tools: list[dict] | None = None, **params) -> BackendResponse:
        """
        Run one chat completion.
        `params` are merged into the request body (temperature, max_tokens, ...).
        Never raises for HTTP or transport failures; they come back as ok=False.
        """
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} url={self.url!r}>"
