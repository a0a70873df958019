"""Per-model token prices (USD per 1K tokens)."""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelPrice:
    input: float
    output: float


DEFAULT_PRICES: dict[str, ModelPrice] = {
    "claude-sonnet-4-5": ModelPrice(input=0.003, output=0.015),
    "gpt-4o": ModelPrice(input=0.0025, output=0.01),
    "gemini-2.5-pro": ModelPrice(input=0.00125, output=0.005),
}

FALLBACK_PRICE = ModelPrice(input=0.003, output=0.015)


class PriceTable:
    """Resolves a model id to its price.

    Lookup order: exact id, then the longest family key contained in the id
    (so "claude-sonnet-4-5-20250929" resolves to "claude-sonnet-4-5"), then
    the default price.
    """

    def __init__(self, prices: dict[str, ModelPrice] | None = None, default: ModelPrice = FALLBACK_PRICE) -> None:
        self._prices = dict(DEFAULT_PRICES if prices is None else prices)
        self._default = default

    @classmethod
    def from_config(cls, raw: dict[str, dict[str, float]]) -> "PriceTable":
        """Build from the settings.yaml ``pricing`` mapping, layered over the built-ins."""
        prices = dict(DEFAULT_PRICES)
        default = FALLBACK_PRICE
        for key, val in raw.items():
            price = ModelPrice(input=float(val["input"]), output=float(val["output"]))
            if key == "default":
                default = price
            else:
                prices[key] = price
        return cls(prices, default)

    def price_for(self, model: str) -> ModelPrice:
        if model in self._prices:
            return self._prices[model]
        families = [key for key in self._prices if key in model]
        if families:
            return self._prices[max(families, key=len)]
        logger.debug("No price for model %r, using default", model)
        return self._default

    def cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        price = self.price_for(model)
        return input_tokens / 1000 * price.input + output_tokens / 1000 * price.output
