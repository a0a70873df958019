"""Top-N trimming of Synthesis and Cross-Exam artifacts before they feed later rounds."""

import dataclasses

from consult.models import Challenge, CrossExamArtifact, Rebuttal, SynthesisArtifact

SEVERITY_KEYWORDS = (
    "critical", "severe", "major", "fatal", "incorrect",
    "flawed", "broken", "wrong", "dangerous", "serious",
)

SUBSTANTIVE_KEYWORDS = (
    "because", "evidence", "data", "research", "proven",
    "demonstrates", "shows", "indicates", "suggests", "confirms",
)


def severity_score(challenge: Challenge) -> float:
    text = challenge.challenge.lower()
    score = len(challenge.evidence) * 2.0
    score += 5 * sum(1 for kw in SEVERITY_KEYWORDS if kw in text)
    return score + len(challenge.challenge) / 100


def substantiveness_score(rebuttal: Rebuttal) -> float:
    text = rebuttal.rebuttal.lower()
    score = len(rebuttal.rebuttal) / 10
    return score + 3 * sum(1 for kw in SUBSTANTIVE_KEYWORDS if kw in text)


def filter_synthesis(artifact: SynthesisArtifact, consensus_points: int, tensions: int) -> SynthesisArtifact:
    """Keep the most confident consensus points and the most contested tensions.

    Priority order is kept whole. Sorts are stable, so ties keep model order.
    """
    points = sorted(artifact.consensus_points, key=lambda cp: cp.confidence, reverse=True)
    contested = sorted(artifact.tensions, key=lambda t: len(t.viewpoints), reverse=True)
    return dataclasses.replace(
        artifact,
        consensus_points=tuple(points[:consensus_points]),
        tensions=tuple(contested[:tensions]),
    )


def filter_cross_exam(artifact: CrossExamArtifact, challenges: int, rebuttals: int) -> CrossExamArtifact:
    """Keep the most severe challenges and most substantive rebuttals. Unresolved is kept whole."""
    ranked_challenges = sorted(artifact.challenges, key=severity_score, reverse=True)
    ranked_rebuttals = sorted(artifact.rebuttals, key=substantiveness_score, reverse=True)
    return dataclasses.replace(
        artifact,
        challenges=tuple(ranked_challenges[:challenges]),
        rebuttals=tuple(ranked_rebuttals[:rebuttals]),
    )
