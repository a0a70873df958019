"""Integration tests — real API calls, no mocks. Requires .env with API keys for the judge and 2+ agents."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

_AVAILABLE_KEYS = [
    k for k in ["ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY", "XAI_API_KEY"]
    if os.environ.get(k, "").strip()
]
pytestmark = pytest.mark.integration

if len(_AVAILABLE_KEYS) < 2:
    pytestmark = pytest.mark.skip(reason=f"Need 2+ API keys, found {len(_AVAILABLE_KEYS)}")


async def test_full_consultation(tmp_path: Path):
    """Run a real four-round consultation with the configured roster."""
    from config.config_loader import load_config
    from consult.cost_ledger import CostLedger
    from consult.orchestrator import ConsultOrchestrator
    from consult.output import save_to_file
    from consult.pricing import PriceTable
    from consult.providers.base import ProviderError
    from consult.roster import build_judge, build_roster

    config = load_config()
    price_table = PriceTable.from_config(config.pricing)
    ledger = CostLedger(price_table)
    providers = {}
    agents = build_roster(config, ledger, providers)
    try:
        judge = build_judge(config, ledger, providers)
    except ProviderError as exc:
        pytest.skip(str(exc))
    if len(agents) < 2:
        pytest.skip(f"Need 2+ agents, got {len(agents)}")

    orchestrator = ConsultOrchestrator(agents, judge, config.policy, ledger=ledger, price_table=price_table)
    result = await orchestrator.consult(
        "Should a small team use a monorepo or separate repos for a Python microservices project?",
        allow_cost_overruns=True,
    )

    assert result.state == "Complete"
    assert result.completed_rounds == 4
    assert result.recommendation
    assert 0.0 <= result.confidence <= 1.0
    assert result.cost.actual_usd > 0
    assert ledger.summary().total_calls >= len(agents) * 2 + 3

    path = save_to_file(result, tmp_path)
    assert path.exists()
