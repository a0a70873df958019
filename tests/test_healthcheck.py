"""Unit tests for consult/healthcheck.py — no real API calls."""

import asyncio

import consult.healthcheck as hc
from consult.healthcheck import run_health_checks
from consult.providers.base import ProviderError
from tests.conftest import MockProvider


async def test_all_providers_pass():
    """All providers succeed -> all marked ok, no errors."""
    providers = {"claude": MockProvider("claude"), "gemini": MockProvider("gemini")}

    results = await run_health_checks(providers)

    assert results["claude"] == (True, "")
    assert results["gemini"] == (True, "")


async def test_ping_is_small():
    """The ping asks for a short reply through the normal call boundary."""
    provider = MockProvider("claude")

    await run_health_checks({"claude": provider})

    messages, system_prompt, options = provider._perform_call.await_args.args
    assert messages[0]["role"] == "user"
    assert system_prompt is None
    assert options == {"max_tokens": 16}


async def test_one_provider_fails():
    """A provider that raises returns ok=False with the error message."""
    providers = {"claude": MockProvider("claude"), "grok": MockProvider("grok")}
    providers["grok"]._perform_call.side_effect = ProviderError("grok", "403 Forbidden")

    results = await run_health_checks(providers)

    assert results["claude"] == (True, "")
    ok, err = results["grok"]
    assert ok is False
    assert "403" in err


async def test_all_providers_fail():
    """All fail -> all marked False."""
    providers = {"openai": MockProvider("openai"), "gemini": MockProvider("gemini")}
    for name, p in providers.items():
        p._perform_call.side_effect = ProviderError(name, f"{name} unauthorized")

    results = await run_health_checks(providers)

    for name in providers:
        ok, err = results[name]
        assert ok is False
        assert name in err


async def test_empty_providers():
    """Empty provider dict returns empty results."""
    assert await run_health_checks({}) == {}


async def test_timeout_counts_as_failure(monkeypatch):
    """A provider that hangs past the timeout is marked as failed."""
    provider = MockProvider("slow")

    async def hang(*args, **kwargs):
        await asyncio.sleep(9999)

    provider._perform_call.side_effect = hang
    monkeypatch.setattr(hc, "_TIMEOUT_SEC", 0.05)

    results = await run_health_checks({"slow": provider})

    ok, _ = results["slow"]
    assert ok is False
