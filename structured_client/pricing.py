"""Token pricing and cost calculation."""

from dataclasses import dataclass
from typing import Dict, List, Optional

import structlog

from .models import TokenUsage

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ModelPricing:
    """Cost per 1M tokens in USD."""

    input_per_1m: float
    output_per_1m: float
    last_updated: str = "2025-05-01"


@dataclass(frozen=True)
class CostBreakdown:
    """Cost of a single request."""

    input_cost: float
    output_cost: float
    total_cost: float
    model: str
    provider: str
    pricing_date: str
    currency: str = "USD"

    def to_dict(self) -> Dict[str, object]:
        return {
            "input_cost": self.input_cost,
            "output_cost": self.output_cost,
            "total_cost": self.total_cost,
            "currency": self.currency,
            "model": self.model,
            "provider": self.provider,
            "pricing_date": self.pricing_date,
        }


PRICING: Dict[str, Dict[str, ModelPricing]] = {
    "anthropic": {
        "claude-opus-4-20250514": ModelPricing(15.00, 75.00),
        "claude-sonnet-4-20250514": ModelPricing(3.00, 15.00),
        "claude-3-5-sonnet-20241022": ModelPricing(3.00, 15.00, "2024-12-01"),
        "claude-3-5-haiku-20241022": ModelPricing(0.80, 4.00, "2024-12-01"),
        "claude-3-opus-20240229": ModelPricing(15.00, 75.00, "2024-12-01"),
        "claude-3-sonnet-20240229": ModelPricing(3.00, 15.00, "2024-12-01"),
        "claude-3-haiku-20240307": ModelPricing(0.25, 1.25, "2024-12-01"),
    },
    "openai": {
        "gpt-4o": ModelPricing(2.50, 10.00, "2024-12-01"),
        "gpt-4o-mini": ModelPricing(0.15, 0.60, "2024-12-01"),
        "gpt-4-turbo": ModelPricing(10.00, 30.00, "2024-12-01"),
        "gpt-4": ModelPricing(30.00, 60.00, "2024-12-01"),
        "gpt-3.5-turbo": ModelPricing(0.50, 1.50, "2024-12-01"),
        "o1": ModelPricing(15.00, 60.00, "2024-12-01"),
        "o3-mini": ModelPricing(1.10, 4.40),
    },
}

# Conservative estimate for models missing from the table
DEFAULT_PRICING = ModelPricing(5.00, 15.00, "2024-12-01")

TOKENS_PER_UNIT = 1_000_000


def detect_provider_from_model(model: str) -> str:
    """Guess the provider from a model name, defaulting to anthropic."""
    name = model.lower()
    if "claude" in name:
        return "anthropic"
    if "gpt" in name or "openai" in name or name.startswith(("o1", "o3")):
        return "openai"
    logger.warning("provider_not_detected", model=model, default="anthropic")
    return "anthropic"


def get_model_pricing(provider: str, model: str) -> ModelPricing:
    """Pricing for a model, or the default pricing when unknown."""
    provider_pricing = PRICING.get(provider.lower())
    if provider_pricing is None:
        logger.warning("unknown_pricing_provider", provider=provider)
        return DEFAULT_PRICING

    pricing = provider_pricing.get(model)
    if pricing is None:
        logger.warning("unknown_pricing_model", provider=provider, model=model)
        return DEFAULT_PRICING
    return pricing


def _round(value: float) -> float:
    return round(value, 6)


def calculate_cost(usage: TokenUsage, model: str, provider: Optional[str] = None) -> CostBreakdown:
    """
    Calculate the cost of a request from its token usage.

    Args:
        usage: Token counts of the request
        model: Model name used
        provider: Provider name (detected from the model when omitted)

    Returns:
        CostBreakdown with costs rounded to 6 decimal places

    Raises:
        ValueError: If a token count is negative
    """
    if usage.prompt_tokens < 0 or usage.completion_tokens < 0:
        raise ValueError("Token counts cannot be negative")

    provider = provider or detect_provider_from_model(model)
    pricing = get_model_pricing(provider, model)

    input_cost = usage.prompt_tokens / TOKENS_PER_UNIT * pricing.input_per_1m
    output_cost = usage.completion_tokens / TOKENS_PER_UNIT * pricing.output_per_1m

    return CostBreakdown(
        input_cost=_round(input_cost),
        output_cost=_round(output_cost),
        total_cost=_round(input_cost + output_cost),
        model=model,
        provider=provider,
        pricing_date=pricing.last_updated,
    )


def estimate_cost(
    total_tokens: int,
    model: str,
    provider: Optional[str] = None,
    input_ratio: float = 0.7,
) -> CostBreakdown:
    """Estimate cost when only the total token count is known."""
    if not 0 <= input_ratio <= 1:
        raise ValueError("Input/output ratio must be between 0 and 1")

    prompt_tokens = round(total_tokens * input_ratio)
    usage = TokenUsage.from_counts(prompt_tokens, total_tokens - prompt_tokens)
    return calculate_cost(usage, model, provider)


def get_supported_providers() -> List[str]:
    return list(PRICING)


def get_supported_models(provider: str) -> List[str]:
    return list(PRICING.get(provider.lower(), {}))


def is_model_supported(model: str, provider: Optional[str] = None) -> bool:
    """Whether the model has its own pricing entry."""
    provider = provider or detect_provider_from_model(model)
    return model in PRICING.get(provider.lower(), {})
