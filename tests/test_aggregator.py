"""
Unit tests for cost aggregation and provider attribution.
"""

from datetime import date
from decimal import Decimal

import pytest

from ai_usage_tracker.core.aggregator import aggregate_costs, attribute
from ai_usage_tracker.core.discovery import LogOrigin
from ai_usage_tracker.core.fingerprint import FileFingerprint
from ai_usage_tracker.core.pricing import PRICING_TABLE, model_pricing
from ai_usage_tracker.core.scanner import FileAggregate, UsageKey
from ai_usage_tracker.core.token_counter import TokenCounts
from ai_usage_tracker.providers.base import Provider
from ai_usage_tracker.storage.models import CacheEntry

D1 = date(2025, 2, 23)
D2 = date(2025, 2, 24)
PRICING = PRICING_TABLE.with_overrides({
    "m1": model_pricing(3, 15),
    "m2": model_pricing(1, 5),
})


def _entry(path, origin, counts):
    return CacheEntry(
        path=path,
        origin=origin,
        fingerprint=FileFingerprint(1, 1),
        parsed_bytes=1,
        aggregate=FileAggregate(counts),
    )


class TestAttribution:
    """Test provider attribution of usage records."""

    def test_direct_records_stay_with_origin(self):
        """Untagged records belong to the producer's provider."""
        assert attribute(LogOrigin.CLAUDE, "claude-sonnet-4-5", None) is Provider.CLAUDE
        assert attribute(LogOrigin.CODEX, "gpt-5", None) is Provider.CODEX

    def test_routing_tag_reclassifies(self):
        """A known routing tag moves the record to Vertex AI."""
        assert attribute(LogOrigin.CLAUDE, "claude-sonnet-4-5", "vrtx") is Provider.VERTEX_AI

    def test_at_sign_model_reclassifies(self):
        """Vertex-style model ids are routed."""
        assert attribute(LogOrigin.CLAUDE, "claude-sonnet-4-5@20250929", None) is Provider.VERTEX_AI

    def test_unknown_tag_is_direct(self):
        """Tags that are not routing indicators are ignored."""
        assert attribute(LogOrigin.CLAUDE, "claude-sonnet-4-5", "abc") is Provider.CLAUDE


class TestAggregateCosts:
    """Test pricing and summarising cached aggregates."""

    def test_single_record_cost(self):
        """100 input and 50 output tokens of m1 cost 100*3/1e6 + 50*15/1e6."""
        entries = [_entry("/a", LogOrigin.CLAUDE, {UsageKey("m1", D2): TokenCounts(100, 50)})]

        snapshot = aggregate_costs(entries, pricing=PRICING, today=D2)

        assert snapshot.total_cost == Decimal("0.00105")
        assert snapshot.today_cost == Decimal("0.00105")
        assert snapshot.by_provider[Provider.CLAUDE].total_cost == Decimal("0.00105")

    def test_daily_series_matches_cache_sums(self):
        """Summing aggregates by (model, day) equals the daily series."""
        entries = [
            _entry("/a", LogOrigin.CLAUDE, {
                UsageKey("m1", D1): TokenCounts(10, 1),
                UsageKey("m1", D2, "vrtx"): TokenCounts(20, 2),
            }),
            _entry("/b", LogOrigin.CLAUDE, {UsageKey("m1", D2): TokenCounts(30, 3)}),
            _entry("/c", LogOrigin.CODEX, {UsageKey("m2", D2): TokenCounts(40, 4)}),
        ]

        snapshot = aggregate_costs(entries, pricing=PRICING, today=D2)

        expected = {}
        for entry in entries:
            for key, tokens in entry.aggregate.items():
                model_day = (key.model, key.day)
                expected[model_day] = expected.get(model_day, TokenCounts()) + tokens
        actual = {(row.model, row.day): row.tokens for day in snapshot.daily for row in day.models}
        assert actual == expected

    def test_entry_order_does_not_matter(self):
        """Aggregating entries in reverse order gives an equal snapshot."""
        entries = [
            _entry("/a", LogOrigin.CLAUDE, {
                UsageKey("m1", D1): TokenCounts(10, 1),
                UsageKey("m2", D2, "vrtx"): TokenCounts(20, 2),
            }),
            _entry("/b", LogOrigin.CLAUDE, {UsageKey("m1", D1): TokenCounts(30, 3)}),
            _entry("/c", LogOrigin.CODEX, {UsageKey("m2", D2): TokenCounts(40, 4)}),
            _entry("/d", LogOrigin.CODEX, {UsageKey("mystery", D2): TokenCounts(5, 5)}),
        ]

        forward = aggregate_costs(entries, pricing=PRICING, today=D2)
        backward = aggregate_costs(list(reversed(entries)), pricing=PRICING, today=D2)

        assert backward == forward
        assert backward.to_dict() == forward.to_dict()

    def test_daily_ascending_and_by_model_cost_descending(self):
        """Days are chronological and models are ordered by cost."""
        entries = [_entry("/a", LogOrigin.CLAUDE, {
            UsageKey("m2", D2): TokenCounts(1_000_000, 0),
            UsageKey("m1", D1): TokenCounts(1_000_000, 0),
        })]

        snapshot = aggregate_costs(entries, pricing=PRICING, today=D2)

        assert [d.day for d in snapshot.daily] == [D1, D2]
        assert [m.model for m in snapshot.by_model] == ["m1", "m2"]

    def test_routed_and_direct_split(self):
        """Routed cost is billed to Vertex AI and reported separately."""
        entries = [_entry("/a", LogOrigin.CLAUDE, {
            UsageKey("m1", D2): TokenCounts(1_000_000, 0),
            UsageKey("m1", D2, "vrtx"): TokenCounts(2_000_000, 0),
        })]

        snapshot = aggregate_costs(entries, pricing=PRICING, today=D2)

        assert snapshot.direct_cost == Decimal("3")
        assert snapshot.routed_cost == Decimal("6")
        assert snapshot.by_provider[Provider.VERTEX_AI].total_cost == Decimal("6")
        assert snapshot.total_cost == Decimal("9")

    def test_provider_filter(self):
        """A provider filter keeps only usage billed to it."""
        entries = [
            _entry("/a", LogOrigin.CLAUDE, {UsageKey("m1", D2): TokenCounts(1_000_000, 0)}),
            _entry("/b", LogOrigin.CODEX, {UsageKey("m2", D2): TokenCounts(1_000_000, 0)}),
        ]

        snapshot = aggregate_costs(entries, pricing=PRICING, today=D2, provider=Provider.CODEX)

        assert list(snapshot.by_provider) == [Provider.CODEX]
        assert snapshot.total_cost == Decimal("1")

    def test_days_window(self):
        """Only the last N days, including today, are counted."""
        entries = [_entry("/a", LogOrigin.CLAUDE, {
            UsageKey("m1", D1): TokenCounts(1_000_000, 0),
            UsageKey("m1", D2): TokenCounts(1_000_000, 0),
        })]

        snapshot = aggregate_costs(entries, pricing=PRICING, today=D2, days=1)

        assert snapshot.total_cost == Decimal("3")
        assert snapshot.summary.days == 1

    def test_invalid_days(self):
        """A non-positive window is rejected."""
        with pytest.raises(ValueError):
            aggregate_costs([], days=0)

    def test_unpriced_models_listed(self):
        """Unknown models keep their tokens but cost nothing."""
        entries = [_entry("/a", LogOrigin.CLAUDE, {UsageKey("mystery", D2): TokenCounts(500, 5)})]

        snapshot = aggregate_costs(entries, pricing=PRICING, today=D2)

        assert snapshot.total_cost == Decimal("0")
        assert snapshot.unpriced_models == ["mystery"]
        assert snapshot.summary.tokens == TokenCounts(500, 5)
        assert not snapshot.by_model[0].priced

    def test_record_errors_summed(self):
        """Record errors of every entry are reported."""
        entry = _entry("/a", LogOrigin.CLAUDE, {})
        entry.record_errors = 3
        assert aggregate_costs([entry], today=D2).record_errors == 3

    def test_summary_without_breakdown(self):
        """Stripping the breakdown keeps the totals."""
        entries = [_entry("/a", LogOrigin.CLAUDE, {UsageKey("m1", D2): TokenCounts(100, 50)})]
        summary = aggregate_costs(entries, pricing=PRICING, today=D2).summary.without_breakdown()
        assert summary.by_model == [] and summary.daily == []
        assert summary.total_cost == Decimal("0.00105")
