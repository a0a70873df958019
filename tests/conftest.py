"""Shared pytest fixtures."""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, ModelConfig, PolicyConfig
from consult.cost_ledger import CostLedger
from consult.events import EventBus
from consult.extraction import extract_cross_exam, extract_independent, extract_synthesis, extract_verdict
from consult.models import (
    Agent,
    AgentInfo,
    AgentResponse,
    ConsultationResult,
    CostSummary,
    ProviderResponse,
    TokenTotals,
    TokenUsage,
)
from consult.providers import base as provider_base
from consult.providers.base import AIProvider


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch):
    monkeypatch.setattr(provider_base, "_BASE_DELAY_SEC", 0.0)


def make_model_config(name: str = "mock", model: str = "mock-model") -> ModelConfig:
    return ModelConfig(
        name=name,
        sdk="test",
        model=model,
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
    )


class MockProvider(AIProvider):
    """Test double AIProvider. ``_perform_call`` is an AsyncMock."""

    vendor = "mock"

    def __init__(
        self,
        provider_name: str = "mock",
        response_content: str = "Mock response",
        model: str = "mock-model",
        ledger: CostLedger | None = None,
        usage: TokenUsage | None = None,
    ) -> None:
        super().__init__(make_model_config(provider_name, model), ledger)
        self._perform_call = AsyncMock(  # type: ignore[method-assign]
            return_value=ProviderResponse(
                text=response_content,
                usage=usage or TokenUsage(input=100, output=50),
            )
        )

    async def _perform_call(self, messages, system_prompt, options) -> ProviderResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return ProviderResponse(text="")

    def respond_with(self, *texts: str, usage: TokenUsage | None = None) -> None:
        """Queue one response per call, in order."""
        self._perform_call.side_effect = [
            ProviderResponse(text=t, usage=usage or TokenUsage(input=100, output=50)) for t in texts
        ]


def independent_json(position: str, confidence: float = 0.8) -> str:
    return json.dumps({
        "position": position,
        "key_points": [f"{position} point"],
        "rationale": f"Because {position}.",
        "confidence": confidence,
        "prose_excerpt": position,
    })


SYNTHESIS_JSON = json.dumps({
    "consensus_points": [
        {"point": "Use PostgreSQL", "supporting_agents": ["Security Expert", "Architect"], "confidence": 0.8},
        {"point": "Add read replicas later", "supporting_agents": ["Pragmatist"], "confidence": 0.6},
    ],
    "tensions": [
        {
            "topic": "Sharding",
            "viewpoints": [
                {"agent": "Architect", "viewpoint": "Shard early"},
                {"agent": "Pragmatist", "viewpoint": "Shard never"},
            ],
        }
    ],
    "priority_order": ["Data model", "Scaling"],
})

CROSS_EXAM_AGENT_JSON = json.dumps({
    "critique": "The consensus ignores write load.",
    "challenges": [{"target_agent": "Architect", "challenge_point": "Sharding", "evidence": "Premature"}],
    "defense": "My position holds.",
    "revised_position": "Use PostgreSQL without sharding.",
})

CROSS_EXAM_JSON = json.dumps({
    "challenges": [
        {
            "challenger": "Pragmatist",
            "target_agent": "Architect",
            "challenge": "Sharding early is wrong for this load",
            "evidence": ["Load is 10 rps"],
        }
    ],
    "rebuttals": [{"agent": "Architect", "rebuttal": "Growth data shows 10x per year"}],
    "unresolved": ["When to shard"],
})

VERDICT_JSON = json.dumps({
    "_analysis": "Weighed all positions.",
    "recommendation": "Use PostgreSQL, defer sharding",
    "confidence": 0.85,
    "evidence": ["Consensus on PostgreSQL", "Load is low"],
    "dissent": [{"agent": "Architect", "concern": "Growth may force sharding", "severity": "medium"}],
})

EXPLORE_VERDICT_JSON = json.dumps({
    "_analysis": "Two viable paths.",
    "recommendations": [
        {
            "option": "PostgreSQL",
            "description": "Single relational store",
            "pros": ["Mature tooling"],
            "cons": ["Manual sharding"],
            "best_when": "Data is relational",
        },
        {
            "option": "DynamoDB",
            "description": "Managed key-value store",
            "pros": ["No ops"],
            "cons": ["Vendor lock-in"],
            "best_when": "Access patterns are known",
        },
    ],
    "synergies": ["Keep sessions in DynamoDB, the rest in PostgreSQL"],
    "confidence": 0.75,
    "summary": "PostgreSQL by default, DynamoDB for hot keys",
})


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return make_model_config("test_model", "test-model-1")


@pytest.fixture
def policy() -> PolicyConfig:
    return PolicyConfig()


@pytest.fixture
def ledger() -> CostLedger:
    return CostLedger()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def three_agents() -> list[Agent]:
    names = [("Security Expert", "claude-sonnet-4-5"), ("Architect", "gpt-4o"), ("Pragmatist", "gemini-2.5-pro")]
    confidences = [0.7, 0.8, 0.6]
    agents = []
    for (name, model), confidence in zip(names, confidences):
        provider = MockProvider(name.lower().replace(" ", "_"), model=model)
        provider.respond_with(independent_json(f"{name} says PostgreSQL", confidence), CROSS_EXAM_AGENT_JSON)
        agents.append(Agent(name=name, model=model, provider=provider, system_prompt=f"You are {name}."))
    return agents


@pytest.fixture
def judge() -> MockProvider:
    provider = MockProvider("judge", model="gpt-4o")
    provider.respond_with(SYNTHESIS_JSON, CROSS_EXAM_JSON, VERDICT_JSON)
    return provider


@pytest.fixture
def sample_app_config(tmp_path: Path) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-sonnet-4-5",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=60,
        max_tokens=4096,
    )
    return AppConfig(
        defaults=DefaultsConfig(output_dir=tmp_path / "output", judge="claude"),
        policy=PolicyConfig(),
        models={"claude": model_cfg},
        agents=[],
        available_providers={"claude"},
    )


@pytest.fixture
def sample_result() -> ConsultationResult:
    round1 = [
        extract_independent(independent_json("Use PostgreSQL", 0.8), "Architect"),
        extract_independent(independent_json("Use SQLite", 0.6), "Pragmatist"),
    ]
    verdict = extract_verdict(VERDICT_JSON)
    return ConsultationResult(
        consultation_id="consult-abc123",
        timestamp="2026-01-01T00:00:00+00:00",
        question="Which database should we use?",
        context="Three engineers, one region",
        agents=[AgentInfo("Architect", "gpt-4o"), AgentInfo("Pragmatist", "gemini-2.5-pro"), AgentInfo("Skeptic", "grok-4")],
        agent_responses=[
            AgentResponse("Architect", "gpt-4o", independent_json("Use PostgreSQL", 0.8), TokenUsage(100, 50), 1.2, "t"),
            AgentResponse("Pragmatist", "gemini-2.5-pro", independent_json("Use SQLite", 0.6), TokenUsage(100, 50), 0.8, "t"),
            AgentResponse("Skeptic", "grok-4", "", TokenUsage(), 0.1, "t", error="[grok] 401 Unauthorized"),
        ],
        state="Complete",
        rounds=4,
        completed_rounds=4,
        round1=round1,
        round2=extract_synthesis(SYNTHESIS_JSON),
        round3=extract_cross_exam(CROSS_EXAM_JSON),
        round4=verdict,
        consensus=verdict.recommendation,
        confidence=verdict.confidence,
        recommendation=verdict.recommendation,
        concerns=["When to shard"],
        dissent=list(verdict.dissent),
        cost=CostSummary(estimated_usd=0.24, actual_usd=0.0123, tokens=TokenTotals(900, 450, 1350)),
        duration_sec=12.5,
        tokens_saved_via_filtering=42,
    )
