"""Abstract base for all AI model providers.

``AIProvider.call`` is the single call boundary the engine uses: it wraps the
vendor request with timing, bounded retry and ledger recording. Adapters only
implement ``_perform_call``.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from config.config_loader import ModelConfig
from consult.cost_ledger import CostLedger
from consult.models import ProviderResponse

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
_BASE_DELAY_SEC = 1.0

RETRYABLE_MARKERS = (
    "econnreset",
    "connection reset",
    "connection error",
    "etimedout",
    "timed out",
    "timeout",
    "socket hang up",
    "hang up",
    "fetch failed",
    "network error",
    "rate limit",
    "too many requests",
    "429",
    "503",
    "service unavailable",
)


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


def is_retryable(exc: BaseException) -> bool:
    """Transient transport/throttling failure, judged from the message text."""
    message = str(exc).lower()
    return any(marker in message for marker in RETRYABLE_MARKERS)


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    vendor: ClassVar[str] = "unknown"

    def __init__(self, config: ModelConfig, ledger: CostLedger | None = None) -> None:
        self._config = config
        self._ledger = ledger

    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'claude')."""
        return self._config.name

    def model_string(self) -> str:
        """Return the actual model identifier string."""
        return self._config.model

    @abstractmethod
    async def _perform_call(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None,
        options: dict[str, Any],
    ) -> ProviderResponse:
        """Send one request to the vendor.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...

    async def call(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> ProviderResponse:
        """Call the model with retry on transient errors.

        Up to MAX_ATTEMPTS attempts, sleeping _BASE_DELAY_SEC * 2**(n-1)
        between them. Every attempt is recorded to the ledger.

        Raises:
            ProviderError: Non-retryable failure, or the last attempt's failure.
        """
        options = options or {}
        for attempt in range(1, MAX_ATTEMPTS + 1):
            start = time.monotonic()
            try:
                response = await self._perform_call(messages, system_prompt, options)
            except Exception as exc:
                latency_ms = (time.monotonic() - start) * 1000
                self._record(None, latency_ms, success=False, error=str(exc))
                if attempt == MAX_ATTEMPTS or not is_retryable(exc):
                    if isinstance(exc, ProviderError):
                        raise
                    raise ProviderError(self.name(), f"API call failed: {exc}") from exc
                delay = _BASE_DELAY_SEC * 2 ** (attempt - 1)
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.1fs",
                    self.name(), attempt, MAX_ATTEMPTS, exc, delay,
                )
                await asyncio.sleep(delay)
                continue

            latency_ms = (time.monotonic() - start) * 1000
            self._record(response, latency_ms, success=True)
            return response

        raise ProviderError(self.name(), "No attempts made")

    def _record(
        self,
        response: ProviderResponse | None,
        latency_ms: float,
        success: bool,
        error: str | None = None,
    ) -> None:
        if self._ledger is None:
            return
        usage = response.usage if response else None
        self._ledger.record(self.vendor, self.model_string(), usage, latency_ms, success, error)
