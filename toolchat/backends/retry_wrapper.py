"""
Retry wrapper for backends with exponential backoff.

Opt-in (backend.max_retries > 0). Wraps any backend to retry transient
HTTP errors:
- 429: Rate limited
- 5xx: Server errors

Never retried:
- timeouts (the caller owns that policy)
- 400, 401, 403, 404: bad request / auth / missing deployment
"""

from __future__ import annotations

import asyncio
import logging

from toolchat.backends.base import BackendResponse, CompletionBackend

logger = logging.getLogger(__name__)


class RetryableBackendWrapper(CompletionBackend):
    """
    Wraps any backend with exponential backoff retry logic.

    Transparent to the orchestrator: same complete() signature.
    """

    def __init__(
        self,
        backend: CompletionBackend,
        max_retries: int = 2,
        backoff_base: float = 1.5,
        backoff_max: float = 10.0,
    ):
        super().__init__(backend.name, backend.url, backend.timeout)
        self.backend = backend
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max

    def _is_retryable(self, response: BackendResponse) -> bool:
        """Determine if a failure is retryable (transient)."""
        if response.timed_out:
            return False
        return response.status_code in (429, 500, 502, 503, 504)

    def _backoff_seconds(self, attempt: int) -> float:
        """Calculate backoff time for attempt N (exponential)."""
        delay = self.backoff_base ** attempt
        return min(delay, self.backoff_max)

    async def complete(self, messages: list[dict], tools: list[dict] | None = None, **params) -> BackendResponse:
        """Complete with retry on transient errors."""
        for attempt in range(self.max_retries + 1):
            response = await self.backend.complete(messages, tools, **params)

            if response.ok:
                return response

            if not self._is_retryable(response):
                logger.debug(
                    "Backend '%s' returned non-retryable failure (%d): %s",
                    self.name,
                    response.status_code,
                    response.error,
                )
                return response

            # Transient error: retry if attempts remain
            if attempt < self.max_retries:
                backoff = self._backoff_seconds(attempt + 1)
                logger.warning(
                    "Backend '%s' transient %d, retry in %.1fs (%d/%d)",
                    self.name,
                    response.status_code,
                    backoff,
                    attempt + 1,
                    self.max_retries,
                )
                await asyncio.sleep(backoff)
                continue

            logger.error(
                "Backend '%s' exhausted retries (last: %s)",
                self.name,
                response.error,
            )
        return response
