"""Consultation modes: which prompts each round uses, and whether a run may stop early.

converge  adversarial framing, one recommendation, early termination allowed
explore   divergent framing, a menu of options, every round always runs
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import ClassVar

from consult import prompts
from consult.models import CrossExamArtifact, IndependentArtifact, SynthesisArtifact

logger = logging.getLogger(__name__)

CONVERGE = "converge"
EXPLORE = "explore"
MODES = (EXPLORE, CONVERGE)
DEFAULT_MODE = CONVERGE


class ModeStrategy(ABC):
    """Supplies the prompt for every round of one consultation mode."""

    name: ClassVar[str]
    allows_early_termination: ClassVar[bool] = False

    @abstractmethod
    def independent_prompt(self, question: str, context: str) -> str: ...

    @abstractmethod
    def synthesis_prompt(self, question: str, round1: Sequence[IndependentArtifact]) -> str: ...

    @abstractmethod
    def cross_exam_prompt(
        self, agent_name: str, question: str, own: IndependentArtifact, synthesis: SynthesisArtifact,
    ) -> str: ...

    @abstractmethod
    def cross_exam_judge_prompt(self, responses: Sequence[tuple[str, str]], synthesis: SynthesisArtifact) -> str: ...

    @abstractmethod
    def verdict_prompt(
        self,
        question: str,
        round1: Sequence[IndependentArtifact],
        synthesis: SynthesisArtifact,
        cross_exam: CrossExamArtifact | None,
    ) -> str: ...


class ConvergeStrategy(ModeStrategy):
    name = CONVERGE
    allows_early_termination = True

    def independent_prompt(self, question, context):
        return prompts.build_independent_prompt(question, context)

    def synthesis_prompt(self, question, round1):
        return prompts.build_synthesis_prompt(question, round1)

    def cross_exam_prompt(self, agent_name, question, own, synthesis):
        return prompts.build_cross_exam_prompt(agent_name, question, own, synthesis)

    def cross_exam_judge_prompt(self, responses, synthesis):
        return prompts.build_cross_exam_judge_prompt(responses, synthesis)

    def verdict_prompt(self, question, round1, synthesis, cross_exam):
        return prompts.build_verdict_prompt(question, round1, synthesis, cross_exam)


class ExploreStrategy(ModeStrategy):
    name = EXPLORE

    def independent_prompt(self, question, context):
        return prompts.build_independent_prompt(question, context, prompts.EXPLORE_INDEPENDENT_TEMPLATE)

    def synthesis_prompt(self, question, round1):
        return prompts.build_synthesis_prompt(question, round1, prompts.EXPLORE_SYNTHESIS_TEMPLATE)

    def cross_exam_prompt(self, agent_name, question, own, synthesis):
        return prompts.build_cross_exam_prompt(
            agent_name, question, own, synthesis, prompts.EXPLORE_CROSS_EXAM_TEMPLATE,
        )

    def cross_exam_judge_prompt(self, responses, synthesis):
        return prompts.build_cross_exam_judge_prompt(
            responses, synthesis, prompts.EXPLORE_CROSS_EXAM_JUDGE_TEMPLATE, prompts.EXPLORE_CROSS_EXAM_FIELDS,
        )

    def verdict_prompt(self, question, round1, synthesis, cross_exam):
        return prompts.build_verdict_prompt(
            question, round1, synthesis, cross_exam, prompts.EXPLORE_VERDICT_TEMPLATE,
        )


_STRATEGIES: dict[str, type[ModeStrategy]] = {
    CONVERGE: ConvergeStrategy,
    EXPLORE: ExploreStrategy,
}


def get_strategy(mode: str = DEFAULT_MODE) -> ModeStrategy:
    """Return the strategy for ``mode``. Raises ValueError for unknown modes."""
    try:
        strategy_cls = _STRATEGIES[mode]
    except KeyError:
        raise ValueError(f"Unknown mode '{mode}'. Expected one of: {', '.join(MODES)}") from None
    logger.debug("Using %s strategy", mode)
    return strategy_cls()
