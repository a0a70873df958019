"""Append-only record of every provider call attempt, with cache-aware pricing."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from consult.models import TokenUsage
from consult.pricing import PriceTable

logger = logging.getLogger(__name__)

# Fraction of the input price waived for tokens read from the provider cache.
CACHE_READ_DISCOUNT: dict[str, float] = {
    "anthropic": 0.9,
    "openai": 0.5,
    "xai": 0.5,
    "google": 0.75,
    "mistral": 0.0,
}

# Extra fraction of the input price charged for tokens written to the cache.
CACHE_WRITE_SURCHARGE: dict[str, float] = {
    "anthropic": 0.25,
}


@dataclass(frozen=True)
class LedgerEntry:
    vendor: str
    model: str
    usage: TokenUsage
    latency_ms: float
    cost_usd: float
    success: bool
    timestamp: str
    error: str | None = None


@dataclass
class LedgerSummary:
    total_cost: float = 0.0
    total_calls: int = 0
    failed_calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0
    cache_hit_rate: float = 0.0
    cost_without_cache: float = 0.0
    average_latency_ms: float = 0.0
    by_model: dict[str, float] = field(default_factory=dict)


class CostLedger:
    """Single-writer call log. Never mutates or drops entries."""

    def __init__(self, price_table: PriceTable | None = None) -> None:
        self._prices = price_table or PriceTable()
        self._entries: list[LedgerEntry] = []

    @property
    def entries(self) -> tuple[LedgerEntry, ...]:
        return tuple(self._entries)

    def price_call(self, vendor: str, model: str, usage: TokenUsage) -> float:
        """USD cost of one call.

        ``usage.input`` counts every prompt token; cached reads and writes
        are the subsets billed at a discount or surcharge.
        """
        price = self._prices.price_for(model)
        uncached = max(usage.input - usage.cached_read - usage.cached_write, 0)
        read_factor = 1 - CACHE_READ_DISCOUNT.get(vendor, 0.0)
        write_factor = 1 + CACHE_WRITE_SURCHARGE.get(vendor, 0.0)
        input_cost = (
            uncached * price.input
            + usage.cached_read * price.input * read_factor
            + usage.cached_write * price.input * write_factor
        ) / 1000
        return input_cost + usage.output / 1000 * price.output

    def record(
        self,
        vendor: str,
        model: str,
        usage: TokenUsage | None,
        latency_ms: float,
        success: bool,
        error: str | None = None,
    ) -> LedgerEntry:
        usage = usage or TokenUsage()
        entry = LedgerEntry(
            vendor=vendor,
            model=model,
            usage=usage,
            latency_ms=latency_ms,
            cost_usd=self.price_call(vendor, model, usage),
            success=success,
            timestamp=datetime.now(timezone.utc).isoformat(),
            error=error,
        )
        self._entries.append(entry)
        logger.debug(
            "Ledger: %s/%s %s in=%d out=%d $%.5f",
            vendor, model, "ok" if success else "failed", usage.input, usage.output, entry.cost_usd,
        )
        return entry

    def summary(self) -> LedgerSummary:
        summary = LedgerSummary(total_calls=len(self._entries))
        if not self._entries:
            return summary

        latency = 0.0
        for entry in self._entries:
            summary.total_cost += entry.cost_usd
            summary.input_tokens += entry.usage.input
            summary.output_tokens += entry.usage.output
            summary.cached_tokens += entry.usage.cached_read
            summary.cost_without_cache += self._prices.cost(entry.model, entry.usage.input, entry.usage.output)
            summary.by_model[entry.model] = summary.by_model.get(entry.model, 0.0) + entry.cost_usd
            latency += entry.latency_ms
            if not entry.success:
                summary.failed_calls += 1

        if summary.input_tokens:
            summary.cache_hit_rate = summary.cached_tokens / summary.input_tokens
        summary.average_latency_ms = latency / len(self._entries)
        return summary
