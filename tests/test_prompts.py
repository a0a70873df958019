"""Tests for consult/prompts.py."""

import json

from consult.extraction import extract_cross_exam, extract_independent, extract_synthesis
from consult.prompts import (
    EXPLORE_CROSS_EXAM_FIELDS,
    EXPLORE_CROSS_EXAM_JUDGE_TEMPLATE,
    EXPLORE_CROSS_EXAM_TEMPLATE,
    EXPLORE_INDEPENDENT_TEMPLATE,
    EXPLORE_SYNTHESIS_TEMPLATE,
    EXPLORE_VERDICT_TEMPLATE,
    JSON_INSTRUCTION,
    build_cross_exam_judge_prompt,
    build_cross_exam_prompt,
    build_independent_prompt,
    build_synthesis_prompt,
    build_verdict_prompt,
)
from tests.conftest import CROSS_EXAM_AGENT_JSON, CROSS_EXAM_JSON, SYNTHESIS_JSON, independent_json


def _round1():
    return [
        extract_independent(independent_json("Use PostgreSQL", 0.9), "Architect"),
        extract_independent(independent_json("Use SQLite", 0.6), "Pragmatist"),
    ]


def test_independent_prompt_includes_question_and_schema():
    prompt = build_independent_prompt("Which database?")
    assert "Which database?" in prompt
    assert JSON_INSTRUCTION in prompt
    assert '"key_points"' in prompt
    assert "### Context:" not in prompt


def test_independent_prompt_includes_context():
    prompt = build_independent_prompt("Which database?", context="We have 3 engineers")
    assert "### Context:\nWe have 3 engineers" in prompt


def test_synthesis_prompt_lists_every_agent():
    prompt = build_synthesis_prompt("Which database?", _round1())
    assert "### Agent: Architect" in prompt
    assert "### Agent: Pragmatist" in prompt
    assert "- Use SQLite point" in prompt
    assert '"consensus_points"' in prompt


def test_cross_exam_prompt_carries_own_position():
    own = _round1()[1]
    prompt = build_cross_exam_prompt("Pragmatist", "Which database?", own, extract_synthesis(SYNTHESIS_JSON))
    assert prompt.startswith("You are Pragmatist")
    assert "Use SQLite" in prompt
    assert "Because Use SQLite." in prompt
    assert "- Use PostgreSQL (Confidence: 0.8)" in prompt
    assert "Sharding: Architect: Shard early vs Pragmatist: Shard never" in prompt


def test_cross_exam_prompt_without_tensions():
    synthesis = extract_synthesis('{"consensus_points": [], "tensions": [], "priority_order": []}')
    prompt = build_cross_exam_prompt("A", "q", _round1()[0], synthesis)
    assert "No consensus points identified yet." in prompt
    assert "No significant tensions identified." in prompt


def test_cross_exam_judge_prompt_formats_json_and_raw_responses():
    prompt = build_cross_exam_judge_prompt(
        [("Architect", CROSS_EXAM_AGENT_JSON), ("Pragmatist", "Plain prose, no JSON here")],
        extract_synthesis(SYNTHESIS_JSON),
    )
    assert "**Critique:** The consensus ignores write load." in prompt
    assert "**Revised Position:** Use PostgreSQL without sharding." in prompt
    assert "### Agent: Pragmatist\nPlain prose, no JSON here" in prompt
    assert '"unresolved"' in prompt


def test_verdict_prompt_with_cross_exam():
    prompt = build_verdict_prompt(
        "Which database?", _round1(), extract_synthesis(SYNTHESIS_JSON), extract_cross_exam(CROSS_EXAM_JSON),
    )
    assert "- Architect: Use PostgreSQL (Confidence: 0.9)" in prompt
    assert "- Pragmatist -> Architect: Sharding early is wrong for this load" in prompt
    assert "When to shard" in prompt
    assert '"_analysis"' in prompt
    assert "Medium (0.7-0.9)" in prompt


def test_verdict_prompt_without_cross_exam():
    prompt = build_verdict_prompt("Which database?", _round1(), extract_synthesis(SYNTHESIS_JSON), None)
    assert "No cross-examination conducted." in prompt


def test_verdict_prompt_lists_tensions():
    prompt = build_verdict_prompt("Which database?", _round1(), extract_synthesis(SYNTHESIS_JSON), None)
    assert "### Tensions (Round 2):" in prompt
    assert "- Sharding: Architect: Shard early vs Pragmatist: Shard never" in prompt


# --- explore templates ----------------------------------------------------------

def test_explore_templates_fill_without_leftover_fields():
    synthesis = extract_synthesis(SYNTHESIS_JSON)
    filled = [
        build_independent_prompt("q", "ctx", EXPLORE_INDEPENDENT_TEMPLATE),
        build_synthesis_prompt("q", _round1(), EXPLORE_SYNTHESIS_TEMPLATE),
        build_cross_exam_prompt("Architect", "q", _round1()[0], synthesis, EXPLORE_CROSS_EXAM_TEMPLATE),
        build_cross_exam_judge_prompt([], synthesis, EXPLORE_CROSS_EXAM_JUDGE_TEMPLATE, EXPLORE_CROSS_EXAM_FIELDS),
        build_verdict_prompt("q", _round1(), synthesis, None, EXPLORE_VERDICT_TEMPLATE),
    ]
    for prompt in filled:
        assert JSON_INSTRUCTION in prompt
        assert "{question}" not in prompt
        assert "{consensus}" not in prompt


def test_explore_judge_prompt_formats_extensions():
    response = json.dumps({
        "extensions": ["Add a cache"],
        "bridges": ["Cache in front of PostgreSQL"],
        "gaps": ["Backups"],
        "refined_position": "PostgreSQL plus Redis",
    })
    prompt = build_cross_exam_judge_prompt(
        [("Architect", response)],
        extract_synthesis(SYNTHESIS_JSON),
        EXPLORE_CROSS_EXAM_JUDGE_TEMPLATE,
        EXPLORE_CROSS_EXAM_FIELDS,
    )
    assert '**Extensions:** ["Add a cache"]' in prompt
    assert "**Refined Position:** PostgreSQL plus Redis" in prompt
    assert "**Critique:**" not in prompt


def test_explore_verdict_prompt_asks_for_options():
    prompt = build_verdict_prompt(
        "q", _round1(), extract_synthesis(SYNTHESIS_JSON), extract_cross_exam(CROSS_EXAM_JSON),
        EXPLORE_VERDICT_TEMPLATE,
    )
    assert "Do NOT pick a single winner" in prompt
    assert '"recommendations"' in prompt
    assert '"best_when"' in prompt
    assert "When to shard" in prompt
