"""
Generic OpenAI-compatible backend.

Supports any endpoint that speaks the OpenAI chat completions format with
function calling:
- OpenAI itself
- vLLM
- llama.cpp server
- LocalAI
- Ollama (/v1 compatibility layer)
"""

from __future__ import annotations

import logging
import time

import httpx

from toolchat.backends.base import BackendResponse, CompletionBackend

logger = logging.getLogger(__name__)


class OpenAICompatibleBackend(CompletionBackend):
    """
    Backend for OpenAI-compatible endpoints.

    Works with any service that implements /v1/chat/completions.
    """

    def __init__(
        self,
        name: str,
        url: str,
        model: str = "",
        timeout: float = 120,
        api_key: str = "",
    ):
        super().__init__(name, url, timeout)
        self.model = model
        self.api_key = api_key

    def _endpoint(self) -> str:
        return f"{self.url}/v1/chat/completions"

    def _headers(self) -> dict:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _build_body(self, messages: list[dict], tools: list[dict] | None, params: dict) -> dict:
        body: dict = {"messages": messages, "stream": False}
        if self.model:
            body["model"] = self.model
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"
        body.update(params)
        return body

    async def complete(self, messages: list[dict], tools: list[dict] | None = None, **params) -> BackendResponse:
        """Forward a non-streaming completion request."""
        body = self._build_body(messages, tools, params)
        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self._endpoint(),
                    json=body,
                    headers=self._headers(),
                )
                latency = (time.monotonic() - t0) * 1000

                if resp.status_code >= 400:
                    return BackendResponse(
                        ok=False,
                        status_code=resp.status_code,
                        backend_name=self.name,
                        latency_ms=latency,
                        error=f"HTTP {resp.status_code}: {resp.text[:200]}",
                    )

                data = resp.json()
                logger.debug(
                    "Backend '%s' answered in %.0fms (%d choices)",
                    self.name, latency, len(data.get("choices") or []),
                )
                return BackendResponse(
                    ok=True,
                    status_code=resp.status_code,
                    data=data,
                    backend_name=self.name,
                    latency_ms=latency,
                )
        except httpx.TimeoutException:
            latency = (time.monotonic() - t0) * 1000
            logger.warning(
                "Backend '%s' timed out after %.0fms",
                self.name,
                latency,
            )
            return BackendResponse(
                ok=False,
                backend_name=self.name,
                latency_ms=latency,
                error=f"Timeout after {self.timeout}s",
                timed_out=True,
            )
        except Exception as e:
            latency = (time.monotonic() - t0) * 1000
            logger.warning(
                "Backend '%s' failed: %s", self.name, e
            )
            return BackendResponse(
                ok=False,
                backend_name=self.name,
                latency_ms=latency,
                error=str(e),
            )
