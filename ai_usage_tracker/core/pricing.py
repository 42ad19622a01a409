"""
Pricing calculations and rate management.

Handles cost computations for Claude and GPT/Codex models. Rates are USD
per million tokens, kept as Decimal so summed costs are exact.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Mapping, Union

from .token_counter import TokenCounts

PER_MILLION = Decimal("1000000")

_VERSION_SUFFIX = re.compile(r"-v\d+$")
_DATE_SUFFIX = re.compile(r"-\d{8}$")

Rate = Union[Decimal, str, int, float]


@dataclass(frozen=True)
class ModelPricing:
    """Per-million-token pricing for a specific model."""
    input_per_million: Decimal
    output_per_million: Decimal
    cache_read_per_million: Decimal = Decimal("0")
    cache_write_per_million: Decimal = Decimal("0")
    priced: bool = True

    def __post_init__(self):
        """Validate rates are non-negative decimals."""
        for name in ("input_per_million", "output_per_million",
                     "cache_read_per_million", "cache_write_per_million"):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                raise ValueError(f"{name} must be a Decimal")
            if value < 0:
                raise ValueError(f"{name} cannot be negative")


# Sentinel for models missing from the table: tokens count, cost is zero
UNPRICED = ModelPricing(Decimal("0"), Decimal("0"), Decimal("0"), Decimal("0"), priced=False)


@dataclass(frozen=True)
class CostBreakdown:
    """Cost per token kind for one block of usage."""
    input_cost: Decimal = Decimal("0")
    output_cost: Decimal = Decimal("0")
    cache_read_cost: Decimal = Decimal("0")
    cache_write_cost: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.input_cost + self.output_cost + self.cache_read_cost + self.cache_write_cost

    def __add__(self, other: "CostBreakdown") -> "CostBreakdown":
        if not isinstance(other, CostBreakdown):
            return NotImplemented
        return CostBreakdown(
            input_cost=self.input_cost + other.input_cost,
            output_cost=self.output_cost + other.output_cost,
            cache_read_cost=self.cache_read_cost + other.cache_read_cost,
            cache_write_cost=self.cache_write_cost + other.cache_write_cost,
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "input": str(self.input_cost),
            "output": str(self.output_cost),
            "cache_read": str(self.cache_read_cost),
            "cache_write": str(self.cache_write_cost),
            "total": str(self.total),
        }


ZERO_COST = CostBreakdown()


def normalize_model(model: str) -> str:
    """Normalize a model id to its pricing-table name.

    Examples:
        "anthropic.claude-sonnet-4-5-v2:0" -> "claude-sonnet-4-5"
        "claude-sonnet-4-5@20250929" -> "claude-sonnet-4-5"
        "claude-sonnet-4-5-20250514" -> "claude-sonnet-4-5"
    """
    name = model.strip()
    if name.startswith("anthropic."):
        name = name[len("anthropic."):]
    # Bedrock ":0" and Vertex "@..." suffixes
    for separator in (":", "@"):
        if separator in name:
            name = name.split(separator, 1)[0]
    name = _VERSION_SUFFIX.sub("", name)
    name = _DATE_SUFFIX.sub("", name)
    return name


def _to_decimal(value: Rate) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"Invalid rate: {value!r}")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def model_pricing(input: Rate, output: Rate, cache_read: Rate = 0, cache_write: Rate = 0) -> ModelPricing:
    """Build ModelPricing from plain numbers (USD per million tokens)."""
    return ModelPricing(
        input_per_million=_to_decimal(input),
        output_per_million=_to_decimal(output),
        cache_read_per_million=_to_decimal(cache_read),
        cache_write_per_million=_to_decimal(cache_write),
    )


@dataclass(frozen=True)
class PricingTable:
    """Pricing table keyed by normalized model name."""
    prices: Dict[str, ModelPricing] = field(default_factory=dict)

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Args:
            model: Model identifier as written in the session log

        Returns:
            ModelPricing for the model, or UNPRICED if it is not in the table
        """
        if model in self.prices:
            return self.prices[model]
        return self.prices.get(normalize_model(model), UNPRICED)

    def is_priced(self, model: str) -> bool:
        return self.get_pricing(model).priced

    def with_overrides(self, overrides: Mapping[str, ModelPricing]) -> "PricingTable":
        """Return a new table with ``overrides`` layered over these prices."""
        prices = dict(self.prices)
        prices.update(overrides)
        return PricingTable(prices)

    def models(self):
        return sorted(self.prices)


PRICING_TABLE = PricingTable({
    "claude-haiku-4-5": model_pricing("1", "5", "0.10", "1.25"),
    "claude-sonnet-4-5": model_pricing("3", "15", "0.30", "3.75"),
    "claude-sonnet-4": model_pricing("3", "15", "0.30", "3.75"),
    "claude-opus-4-5": model_pricing("5", "25", "0.50", "6.25"),
    "claude-opus-4-6": model_pricing("5", "25", "0.50", "6.25"),
    "claude-opus-4": model_pricing("15", "75", "1.50", "18.75"),
    # GPT / Codex models
    "gpt-5": model_pricing("1.25", "10", "0.125"),
    "gpt-5-codex": model_pricing("1.25", "10", "0.125"),
    "gpt-5.1": model_pricing("1.25", "10", "0.125"),
    "gpt-5.2": model_pricing("1.75", "14", "0.175"),
    "gpt-5.2-codex": model_pricing("1.75", "14", "0.175"),
    "gpt-5.3-codex": model_pricing("1.75", "14", "0.175"),
})


def calculate_cost(pricing: ModelPricing, tokens: TokenCounts) -> CostBreakdown:
    """Calculate the cost of token usage under a pricing entry.

    Args:
        pricing: Rates for the model
        tokens: Token counts to price

    Returns:
        Exact per-kind costs; no rounding is applied
    """
    if not pricing.priced:
        return ZERO_COST
    return CostBreakdown(
        input_cost=Decimal(tokens.input_tokens) * pricing.input_per_million / PER_MILLION,
        output_cost=Decimal(tokens.output_tokens) * pricing.output_per_million / PER_MILLION,
        cache_read_cost=Decimal(tokens.cache_read_tokens) * pricing.cache_read_per_million / PER_MILLION,
        cache_write_cost=Decimal(tokens.cache_write_tokens) * pricing.cache_write_per_million / PER_MILLION,
    )
