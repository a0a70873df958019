"""Turn raw model text into validated round artifacts.

Models are asked for JSON but routinely wrap it in prose or markdown fences,
leave trailing commas, or forget to escape quotes inside string values. The
extractor locates the JSON object, parses strictly, and only if that fails
applies the repairs below before trying again. Text after the first complete
object is ignored. Anything that still does not match the artifact schema
raises ArtifactExtractionError; no defaults are ever substituted for missing
content.
"""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any

from consult.models import (
    Artifact,
    ArtifactKind,
    Challenge,
    ConsensusPoint,
    CrossExamArtifact,
    Dissent,
    ExploreOption,
    IndependentArtifact,
    Rebuttal,
    SynthesisArtifact,
    Tension,
    VerdictArtifact,
    Viewpoint,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r'"(?:\\.|[^"\\])*"|,(\s*[}\]])')
_DECODER = json.JSONDecoder()

SEVERITIES = ("high", "medium", "low")


class ArtifactExtractionError(ValueError):
    """Model output could not be located, parsed, or validated as an artifact."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def locate_json(text: str) -> str:
    """Return the JSON object text: a fenced block if present, else first '{' to last '}'."""
    if not text or not text.strip():
        raise ArtifactExtractionError("Empty response text")
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1)
    first, last = text.find("{"), text.rfind("}")
    if first == -1 or last <= first:
        raise ArtifactExtractionError("No JSON object found in response")
    return text[first:last + 1]


def strip_trailing_commas(json_text: str) -> str:
    """Drop commas directly before a closing bracket. Quoted strings are left as they are."""
    return _TRAILING_COMMA_RE.sub(lambda m: m.group(1) if m.group(1) is not None else m.group(0), json_text)


def _next_non_whitespace(text: str, start: int) -> str | None:
    for ch in text[start:]:
        if not ch.isspace():
            return ch
    return None


def escape_interior_quotes(json_text: str) -> str:
    """Escape double quotes that appear inside string values.

    Heuristic: a quote inside a string is treated as closing it only when the
    next non-whitespace character is structural (``: , } ]``) or the input
    ends. It can misfire on a value such as ``"say "x", then"``.
    """
    out: list[str] = []
    in_string = False
    pending_escape = False
    for i, ch in enumerate(json_text):
        if pending_escape:
            out.append(ch)
            pending_escape = False
        elif ch == "\\":
            out.append(ch)
            pending_escape = True
        elif ch == '"':
            if not in_string:
                in_string = True
                out.append(ch)
            elif _next_non_whitespace(json_text, i + 1) in (":", ",", "}", "]", None):
                in_string = False
                out.append(ch)
            else:
                out.append('\\"')
        else:
            out.append(ch)
    return "".join(out)


def _decode(json_text: str) -> Any:
    # Decodes the leading value only; prose after it may contain stray braces.
    value, _ = _DECODER.raw_decode(json_text)
    return value


def parse_json_object(text: str) -> dict[str, Any]:
    """Locate and parse the JSON object in ``text``, repairing only on failure."""
    candidate = locate_json(text)
    try:
        parsed = _decode(candidate)
    except json.JSONDecodeError as strict_exc:
        repaired = strip_trailing_commas(escape_interior_quotes(candidate))
        try:
            parsed = _decode(repaired)
        except json.JSONDecodeError as exc:
            raise ArtifactExtractionError(f"Failed to parse JSON artifact: {exc}") from strict_exc
        logger.debug("Parsed JSON after repair")
    if not isinstance(parsed, dict):
        raise ArtifactExtractionError("Parsed artifact must be a JSON object")
    return parsed


# --- field helpers -----------------------------------------------------------

def _field(obj: dict[str, Any], snake: str, camel: str | None = None) -> Any:
    if snake in obj and obj[snake] is not None:
        return obj[snake]
    if camel is not None:
        return obj.get(camel)
    return None


def _require_str(value: Any, name: str, allow_empty: bool = False) -> str:
    if not isinstance(value, str) or (not allow_empty and not value.strip()):
        raise ArtifactExtractionError(f"{name} must be a non-empty string")
    return value


def _require_list(value: Any, name: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ArtifactExtractionError(f"Field '{name}' must be an array")
    return value


def _require_str_list(value: Any, name: str) -> tuple[str, ...]:
    items = _require_list(value, name)
    if not all(isinstance(item, str) for item in items):
        raise ArtifactExtractionError(f"Field '{name}' must be an array of strings")
    return tuple(items)


def _require_object(value: Any, name: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ArtifactExtractionError(f"{name} must be an object")
    return value


def _require_confidence(value: Any, name: str = "confidence") -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 1:
        raise ArtifactExtractionError(f"{name} must be a number between 0 and 1, got {value!r}")
    return float(value)


# --- per-kind extraction -----------------------------------------------------

def extract_independent(text: str, agent_id: str) -> IndependentArtifact:
    data = parse_json_object(text)
    key_points = _require_str_list(_field(data, "key_points", "keyPoints"), "key_points")
    if not key_points:
        raise ArtifactExtractionError("key_points must contain at least one point")
    return IndependentArtifact(
        agent_id=_require_str(agent_id, "agent_id"),
        position=_require_str(_field(data, "position"), "position"),
        key_points=key_points,
        rationale=_require_str(_field(data, "rationale"), "rationale"),
        confidence=_require_confidence(_field(data, "confidence")),
        prose_excerpt=_require_str(_field(data, "prose_excerpt", "proseExcerpt") or "", "prose_excerpt", allow_empty=True),
        created_at=_now(),
    )


def extract_synthesis(text: str) -> SynthesisArtifact:
    data = parse_json_object(text)

    points = []
    for i, raw in enumerate(_require_list(_field(data, "consensus_points", "consensusPoints"), "consensus_points")):
        cp = _require_object(raw, f"consensus_points[{i}]")
        points.append(ConsensusPoint(
            point=_require_str(cp.get("point"), f"consensus_points[{i}].point"),
            supporting_agents=_require_str_list(_field(cp, "supporting_agents", "supportingAgents"), "supporting_agents"),
            confidence=_require_confidence(cp.get("confidence"), f"consensus_points[{i}].confidence"),
        ))

    tensions = []
    for i, raw in enumerate(_require_list(data.get("tensions"), "tensions")):
        t = _require_object(raw, f"tensions[{i}]")
        viewpoints = []
        for j, vp_raw in enumerate(_require_list(t.get("viewpoints"), "viewpoints")):
            vp = _require_object(vp_raw, f"tensions[{i}].viewpoints[{j}]")
            viewpoints.append(Viewpoint(
                agent=_require_str(vp.get("agent"), f"tensions[{i}].viewpoints[{j}].agent"),
                viewpoint=_require_str(vp.get("viewpoint"), f"tensions[{i}].viewpoints[{j}].viewpoint"),
            ))
        if len(viewpoints) < 2:
            raise ArtifactExtractionError(f"Tension at index {i} must have at least 2 viewpoints")
        tensions.append(Tension(topic=_require_str(t.get("topic"), f"tensions[{i}].topic"), viewpoints=tuple(viewpoints)))

    return SynthesisArtifact(
        consensus_points=tuple(points),
        tensions=tuple(tensions),
        priority_order=_require_str_list(_field(data, "priority_order", "priorityOrder"), "priority_order"),
        created_at=_now(),
    )


def extract_cross_exam(text: str) -> CrossExamArtifact:
    data = parse_json_object(text)

    challenges = []
    for i, raw in enumerate(_require_list(data.get("challenges"), "challenges")):
        c = _require_object(raw, f"challenges[{i}]")
        challenges.append(Challenge(
            challenger=_require_str(c.get("challenger"), f"challenges[{i}].challenger"),
            target_agent=_require_str(_field(c, "target_agent", "targetAgent"), f"challenges[{i}].target_agent"),
            challenge=_require_str(c.get("challenge"), f"challenges[{i}].challenge"),
            evidence=_require_str_list(c.get("evidence"), "evidence"),
        ))

    rebuttals = []
    for i, raw in enumerate(_require_list(data.get("rebuttals"), "rebuttals")):
        r = _require_object(raw, f"rebuttals[{i}]")
        rebuttals.append(Rebuttal(
            agent=_require_str(r.get("agent"), f"rebuttals[{i}].agent"),
            rebuttal=_require_str(r.get("rebuttal"), f"rebuttals[{i}].rebuttal"),
        ))

    return CrossExamArtifact(
        challenges=tuple(challenges),
        rebuttals=tuple(rebuttals),
        unresolved=_require_str_list(data.get("unresolved"), "unresolved"),
        created_at=_now(),
    )


def _explore_options(data: dict[str, Any]) -> tuple[ExploreOption, ...]:
    options = []
    for i, raw in enumerate(_require_list(data.get("recommendations"), "recommendations")):
        o = _require_object(raw, f"recommendations[{i}]")
        options.append(ExploreOption(
            option=_require_str(o.get("option"), f"recommendations[{i}].option"),
            description=_optional_str(o.get("description")),
            pros=_require_str_list(o.get("pros"), f"recommendations[{i}].pros"),
            cons=_require_str_list(o.get("cons"), f"recommendations[{i}].cons"),
            best_when=_optional_str(_field(o, "best_when", "bestWhen")),
        ))
    return tuple(options)


def _optional_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def extract_verdict(text: str, mode: str = "converge") -> VerdictArtifact:
    """Extract a Round 4 verdict.

    Converge verdicts carry one recommendation with evidence. Explore
    verdicts carry a menu of options; when such a verdict has no evidence
    list, each option's name and best-use note stand in for it.
    """
    data = parse_json_object(text)
    options = _explore_options(data)

    recommendation = data.get("recommendation")
    if not isinstance(recommendation, str) or not recommendation.strip():
        # Some judges answer with a summary or a ranked list instead
        summary = data.get("summary")
        if isinstance(summary, str) and summary.strip():
            recommendation = summary
        elif options:
            recommendation = options[0].option
    recommendation = _require_str(recommendation, "recommendation")

    evidence = _require_str_list(data.get("evidence"), "evidence")
    if not evidence and mode == "explore":
        evidence = tuple(f"{o.option}: {o.best_when}" if o.best_when else o.option for o in options)
    if not evidence:
        raise ArtifactExtractionError("evidence must contain at least one item")

    dissent = []
    for i, raw in enumerate(_require_list(data.get("dissent"), "dissent")):
        d = _require_object(raw, f"dissent[{i}]")
        severity = d.get("severity")
        if severity not in SEVERITIES:
            raise ArtifactExtractionError(
                f"Dissent at index {i} has invalid severity: {severity!r}. Must be high, medium, or low."
            )
        dissent.append(Dissent(
            agent=_require_str(d.get("agent"), f"dissent[{i}].agent"),
            concern=_require_str(d.get("concern"), f"dissent[{i}].concern"),
            severity=severity,
        ))

    return VerdictArtifact(
        recommendation=recommendation,
        confidence=_require_confidence(data.get("confidence")),
        evidence=evidence,
        dissent=tuple(dissent),
        created_at=_now(),
        options=options,
        synergies=_require_str_list(data.get("synergies"), "synergies"),
    )


def extract_artifact(kind: ArtifactKind, text: str, agent_id: str | None = None, mode: str = "converge") -> Artifact:
    """Dispatch to the extractor for ``kind``. ``agent_id`` is required for INDEPENDENT."""
    match kind:
        case ArtifactKind.INDEPENDENT:
            if not agent_id:
                raise ArtifactExtractionError("agent_id is required for independent artifacts")
            return extract_independent(text, agent_id)
        case ArtifactKind.SYNTHESIS:
            return extract_synthesis(text)
        case ArtifactKind.CROSS_EXAM:
            return extract_cross_exam(text)
        case ArtifactKind.VERDICT:
            return extract_verdict(text, mode)
        case _:
            raise ArtifactExtractionError(f"Unknown artifact kind: {kind!r}")
