"""Tests for consult/filtering.py."""

from consult.filtering import filter_cross_exam, filter_synthesis, severity_score, substantiveness_score
from consult.models import (
    Challenge,
    ConsensusPoint,
    CrossExamArtifact,
    Rebuttal,
    SynthesisArtifact,
    Tension,
    Viewpoint,
)


def _synthesis() -> SynthesisArtifact:
    return SynthesisArtifact(
        consensus_points=tuple(
            ConsensusPoint(point=f"p{c}", supporting_agents=("A",), confidence=c)
            for c in (0.5, 0.9, 0.7, 0.95, 0.1)
        ),
        tensions=(
            Tension("two", (Viewpoint("A", "x"), Viewpoint("B", "y"))),
            Tension("three", (Viewpoint("A", "x"), Viewpoint("B", "y"), Viewpoint("C", "z"))),
            Tension("two-again", (Viewpoint("A", "x"), Viewpoint("C", "z"))),
        ),
        priority_order=("a", "b", "c", "d"),
        created_at="2026-01-01T00:00:00+00:00",
    )


def test_filter_synthesis_keeps_top_confidence():
    filtered = filter_synthesis(_synthesis(), consensus_points=3, tensions=2)
    assert [cp.confidence for cp in filtered.consensus_points] == [0.95, 0.9, 0.7]
    assert [t.topic for t in filtered.tensions] == ["three", "two"]
    assert filtered.priority_order == ("a", "b", "c", "d")
    assert filtered.created_at == _synthesis().created_at


def test_filter_synthesis_under_limit_is_unchanged_in_content():
    original = _synthesis()
    filtered = filter_synthesis(original, consensus_points=10, tensions=10)
    assert len(filtered.consensus_points) == 5
    assert len(filtered.tensions) == 3


def test_severity_score_weights():
    plain = Challenge("A", "B", "x" * 100, ())
    assert severity_score(plain) == 1.0
    severe = Challenge("A", "B", "This is a critical and dangerous flaw", ("e1", "e2"))
    assert severity_score(severe) == 4 + 10 + len(severe.challenge) / 100


def test_substantiveness_score_weights():
    assert substantiveness_score(Rebuttal("A", "x" * 10)) == 1.0
    r = Rebuttal("A", "The data shows it works because of caching")
    assert substantiveness_score(r) == len(r.rebuttal) / 10 + 9


def test_filter_cross_exam():
    artifact = CrossExamArtifact(
        challenges=tuple(Challenge("A", "B", f"challenge {i}", ("e",) * i) for i in range(7)),
        rebuttals=(
            Rebuttal("A", "no"),
            Rebuttal("B", "Research confirms this because the evidence indicates so"),
        ),
        unresolved=("u1", "u2", "u3"),
        created_at="2026-01-01T00:00:00+00:00",
    )
    filtered = filter_cross_exam(artifact, challenges=5, rebuttals=1)
    assert [len(c.evidence) for c in filtered.challenges] == [6, 5, 4, 3, 2]
    assert filtered.rebuttals[0].agent == "B"
    assert filtered.unresolved == ("u1", "u2", "u3")
