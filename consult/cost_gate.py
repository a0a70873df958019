"""Admission control: decide whether a consultation needs the user's consent."""

import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from config.config_loader import PolicyConfig
from consult.models import CostEstimate

logger = logging.getLogger(__name__)


class ConsentDecision(str, Enum):
    APPROVED = "approved"
    DENIED = "denied"
    ALWAYS = "always"   # approve and raise the auto-approve threshold


ConsentPrompt = Callable[[CostEstimate, int, int], Awaitable[ConsentDecision]]


class CostGate:
    """Wraps the consent UI. The gate itself does no interactive I/O."""

    def __init__(self, consent_prompt: ConsentPrompt | None = None) -> None:
        self._consent_prompt = consent_prompt

    def should_prompt_user(self, estimate: CostEstimate, policy: PolicyConfig) -> bool:
        """True iff the estimate is strictly above ``policy.always_allow_under``."""
        return estimate.estimated_cost_usd > policy.always_allow_under

    async def get_user_consent(self, estimate: CostEstimate, agent_count: int, max_rounds: int) -> ConsentDecision:
        if self._consent_prompt is None:
            logger.warning("No consent prompt configured; denying $%.4f consultation", estimate.estimated_cost_usd)
            return ConsentDecision.DENIED
        decision = await self._consent_prompt(estimate, agent_count, max_rounds)
        logger.info("User consent for $%.4f: %s", estimate.estimated_cost_usd, decision.value)
        return decision

    def display_auto_approved(self, cost: float) -> None:
        logger.info("Cost $%.4f under auto-approve threshold, proceeding", cost)
