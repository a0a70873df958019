"""Tests for consult/pricing.py."""

import pytest

from consult.pricing import FALLBACK_PRICE, ModelPrice, PriceTable


def test_exact_match():
    assert PriceTable().price_for("gpt-4o") == ModelPrice(0.0025, 0.01)


def test_family_match_on_dated_model_id():
    assert PriceTable().price_for("claude-sonnet-4-5-20250929") == ModelPrice(0.003, 0.015)


def test_longest_family_wins():
    table = PriceTable({"gpt-4o": ModelPrice(1, 1), "gpt-4o-mini": ModelPrice(2, 2)})
    assert table.price_for("gpt-4o-mini-2024") == ModelPrice(2, 2)


def test_unknown_model_uses_default():
    assert PriceTable().price_for("llama-3") == FALLBACK_PRICE


def test_from_config_overrides_and_default():
    table = PriceTable.from_config({
        "gpt-4o": {"input": 1.0, "output": 2.0},
        "default": {"input": 0.5, "output": 0.5},
    })
    assert table.price_for("gpt-4o") == ModelPrice(1.0, 2.0)
    assert table.price_for("gemini-2.5-pro") == ModelPrice(0.00125, 0.005)
    assert table.price_for("mystery") == ModelPrice(0.5, 0.5)


def test_cost():
    assert PriceTable().cost("gpt-4o", 1000, 2000) == pytest.approx(0.0025 + 0.02)
