"""Tests for cost calculation."""

import pytest

from structured_client.models import TokenUsage
from structured_client.pricing import (
    DEFAULT_PRICING,
    calculate_cost,
    detect_provider_from_model,
    estimate_cost,
    get_model_pricing,
    get_supported_models,
    get_supported_providers,
    is_model_supported,
)


def test_known_model_cost():
    cost = calculate_cost(TokenUsage.from_counts(1_000_000, 1_000_000), "gpt-4o", "openai")
    assert cost.input_cost == 2.5
    assert cost.output_cost == 10.0
    assert cost.total_cost == 12.5
    assert cost.currency == "USD"
    assert cost.pricing_date == "2024-12-01"


def test_small_usage_rounded_to_six_places():
    cost = calculate_cost(TokenUsage.from_counts(1000, 2000), "claude-3-haiku-20240307", "anthropic")
    assert cost.input_cost == pytest.approx(0.00025, abs=1e-9)
    assert cost.output_cost == pytest.approx(0.0025, abs=1e-9)
    assert cost.total_cost == pytest.approx(0.00275, abs=1e-9)


def test_unknown_model_uses_default_pricing():
    assert get_model_pricing("openai", "gpt-99") is DEFAULT_PRICING
    cost = calculate_cost(TokenUsage.from_counts(1_000_000, 0), "gpt-99", "openai")
    assert cost.input_cost == DEFAULT_PRICING.input_per_1m


def test_zero_usage_costs_nothing():
    cost = calculate_cost(TokenUsage.zero(), "gpt-4o", "openai")
    assert cost.total_cost == 0


def test_negative_tokens_rejected():
    with pytest.raises(ValueError):
        calculate_cost(TokenUsage(prompt_tokens=-1), "gpt-4o", "openai")


@pytest.mark.parametrize(
    "model, provider",
    [
        ("claude-3-opus-20240229", "anthropic"),
        ("gpt-4o-mini", "openai"),
        ("o3-mini", "openai"),
        ("llama-3", "anthropic"),
    ],
)
def test_detect_provider(model, provider):
    assert detect_provider_from_model(model) == provider


def test_provider_detected_when_omitted():
    assert calculate_cost(TokenUsage.zero(), "gpt-4o").provider == "openai"


def test_estimate_cost_splits_tokens():
    cost = estimate_cost(1_000_000, "gpt-4o", "openai", input_ratio=0.5)
    assert cost.input_cost == 1.25
    assert cost.output_cost == 5.0


def test_estimate_cost_validates_ratio():
    with pytest.raises(ValueError):
        estimate_cost(100, "gpt-4o", input_ratio=1.5)


def test_supported_listings():
    assert set(get_supported_providers()) == {"anthropic", "openai"}
    assert "gpt-4o" in get_supported_models("openai")
    assert get_supported_models("gemini") == []
    assert is_model_supported("claude-sonnet-4-20250514")
    assert not is_model_supported("gpt-99")
