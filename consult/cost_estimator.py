"""Pre-flight cost prediction for a consultation."""

import json
import logging
import math
from collections.abc import Sequence
from typing import Any

from consult.models import Agent, CostEstimate
from consult.pricing import PriceTable

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
TOKENS_PER_ROUND = 2000  # assumed output tokens per agent per round


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class CostEstimator:
    def __init__(self, price_table: PriceTable | None = None) -> None:
        self._prices = price_table or PriceTable()

    def estimate(self, question: str, agents: Sequence[Agent], max_rounds: int, context: str = "") -> CostEstimate:
        """Predict tokens and USD for ``agents`` answering ``question`` over ``max_rounds``.

        Every agent is assumed to see the full question + context and to
        write TOKENS_PER_ROUND tokens in every round.
        """
        per_call_input = estimate_tokens(question + context)
        input_tokens = per_call_input * len(agents) * max_rounds
        output_tokens = TOKENS_PER_ROUND * len(agents) * max_rounds

        cost = 0.0
        for agent in agents:
            price = self._prices.price_for(agent.model)
            cost += per_call_input / 1000 * price.input * max_rounds
            cost += TOKENS_PER_ROUND * max_rounds / 1000 * price.output

        estimate = CostEstimate(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            estimated_cost_usd=cost,
        )
        logger.debug(
            "Estimate: %d agents x %d rounds, %d tokens, $%.4f",
            len(agents), max_rounds, estimate.total_tokens, cost,
        )
        return estimate

    def early_termination_savings(self, agents: Sequence[Agent], skipped_rounds: int) -> float:
        """USD not spent because ``skipped_rounds`` rounds never ran."""
        return sum(
            TOKENS_PER_ROUND * skipped_rounds / 1000 * self._prices.price_for(agent.model).output
            for agent in agents
        )


def estimate_token_savings(originals: Sequence[Any], filtered: Sequence[Any]) -> int:
    """Approximate tokens saved by feeding ``filtered`` instead of ``originals``."""
    before = sum(estimate_tokens(json.dumps(item, default=str)) for item in originals)
    after = sum(estimate_tokens(json.dumps(item, default=str)) for item in filtered)
    return max(before - after, 0)


def efficiency_percentage(saved: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return saved / total * 100
