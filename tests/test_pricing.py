"""
Unit tests for pricing calculations.

Tests cost accuracy, model normalisation and unknown-model handling.
"""

from decimal import Decimal

import pytest

from ai_usage_tracker.core.pricing import (
    PRICING_TABLE,
    UNPRICED,
    ModelPricing,
    PricingTable,
    calculate_cost,
    model_pricing,
    normalize_model,
)
from ai_usage_tracker.core.token_counter import TokenCounts


class TestPricingTable:
    """Test pricing table functionality."""

    def test_get_supported_model(self):
        """Verify pricing retrieval for supported models."""
        pricing = PRICING_TABLE.get_pricing("claude-sonnet-4-5")
        assert pricing.input_per_million == Decimal("3")
        assert pricing.output_per_million == Decimal("15")
        assert pricing.cache_read_per_million == Decimal("0.30")
        assert pricing.cache_write_per_million == Decimal("3.75")

    def test_unknown_model_is_unpriced(self):
        """Unknown models return the UNPRICED sentinel instead of raising."""
        assert PRICING_TABLE.get_pricing("unknown-model") is UNPRICED
        assert not PRICING_TABLE.is_priced("unknown-model")

    def test_lookup_normalises_model_id(self):
        """Dated and platform-suffixed ids resolve to the base model."""
        base = PRICING_TABLE.get_pricing("claude-opus-4-5")
        assert PRICING_TABLE.get_pricing("claude-opus-4-5-20251101") == base
        assert PRICING_TABLE.get_pricing("claude-opus-4-5@20251101") == base

    def test_overrides_return_new_table(self):
        """Overrides are layered over the base table without mutating it."""
        custom = PRICING_TABLE.with_overrides({"m1": model_pricing(3, 15)})
        assert custom.is_priced("m1")
        assert not PRICING_TABLE.is_priced("m1")
        assert custom.get_pricing("gpt-5") == PRICING_TABLE.get_pricing("gpt-5")

    def test_negative_rate_rejected(self):
        """Verify negative rates raise ValueError."""
        with pytest.raises(ValueError, match="cannot be negative"):
            model_pricing(-1, 2)

    def test_float_rate_rejected(self):
        """Rates must be Decimal so sums stay exact."""
        with pytest.raises(ValueError, match="must be a Decimal"):
            ModelPricing(3.0, Decimal("1"))


class TestNormalizeModel:
    """Test model id normalisation."""

    @pytest.mark.parametrize("raw,expected", [
        ("anthropic.claude-sonnet-4-5-v2:0", "claude-sonnet-4-5"),
        ("claude-sonnet-4-5-20250514", "claude-sonnet-4-5"),
        ("claude-sonnet-4-5@20250929", "claude-sonnet-4-5"),
        ("claude-haiku-4-5", "claude-haiku-4-5"),
        ("gpt-5.2-codex", "gpt-5.2-codex"),
    ])
    def test_normalisation(self, raw, expected):
        """Verify prefixes and suffixes are stripped."""
        assert normalize_model(raw) == expected


class TestCostCalculation:
    """Test cost calculation accuracy."""

    def test_exact_cost_input_and_output(self):
        """100 input and 50 output tokens at $3/$15 per million."""
        pricing = model_pricing(3, 15)
        cost = calculate_cost(pricing, TokenCounts(input_tokens=100, output_tokens=50))
        assert cost.total == Decimal(100) * 3 / Decimal(1_000_000) + Decimal(50) * 15 / Decimal(1_000_000)
        assert cost.total == Decimal("0.00105")

    def test_cache_kinds_priced_independently(self):
        """Each token kind uses its own rate."""
        pricing = PRICING_TABLE.get_pricing("claude-opus-4")
        cost = calculate_cost(pricing, TokenCounts(1_000_000, 1_000_000, 1_000_000, 1_000_000))
        assert cost.input_cost == Decimal("15")
        assert cost.output_cost == Decimal("75")
        assert cost.cache_read_cost == Decimal("1.50")
        assert cost.cache_write_cost == Decimal("18.75")
        assert cost.total == Decimal("110.25")

    def test_unpriced_costs_nothing(self):
        """Unpriced usage has zero cost."""
        cost = calculate_cost(UNPRICED, TokenCounts(input_tokens=5_000_000))
        assert cost.total == Decimal("0")

    def test_empty_table(self):
        """An empty table prices nothing."""
        assert PricingTable().get_pricing("claude-sonnet-4-5") is UNPRICED
