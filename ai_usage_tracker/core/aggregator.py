"""
Cost aggregation.

Turns cached per-file token aggregates into priced per-model, per-day and
per-provider summaries. Provider attribution happens here, not in the
scanner: a record routed through a cloud platform is billed to that
platform instead of the producer whose log it came from.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..providers.base import Provider
from .discovery import LogOrigin
from .pricing import PRICING_TABLE, ZERO_COST, CostBreakdown, PricingTable, calculate_cost
from .token_counter import TokenCounts, ZERO_TOKENS

ROUTING_TAGS = frozenset({"vrtx"})

ORIGIN_PROVIDERS = {
    LogOrigin.CLAUDE: Provider.CLAUDE,
    LogOrigin.CODEX: Provider.CODEX,
}

COST_PROVIDERS = (Provider.CLAUDE, Provider.CODEX, Provider.VERTEX_AI)


def attribute(origin: LogOrigin, model: str, route_tag: Optional[str]) -> Provider:
    """Decide which provider a usage record is billed to.

    Args:
        origin: Producer of the log the record came from
        model: Model id as written in the log
        route_tag: Routing tag extracted by the scanner, if any

    Returns:
        Vertex AI for routed records (known routing tag, or an ``@``
        version suffix in the model id), otherwise the origin's provider
    """
    if (route_tag is not None and route_tag.lower() in ROUTING_TAGS) or "@" in model:
        return Provider.VERTEX_AI
    return ORIGIN_PROVIDERS[origin]


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass(frozen=True)
class ModelDayCost:
    """Priced usage of one model on one day."""
    model: str
    day: date
    tokens: TokenCounts
    cost: CostBreakdown
    priced: bool = True
    provider: Optional[Provider] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "model": self.model,
            "date": self.day.isoformat(),
            "tokens": self.tokens.to_dict(),
            "cost": float(self.cost.total),
            "priced": self.priced,
        }
        if self.provider is not None:
            data["provider"] = self.provider.id
        return data


@dataclass(frozen=True)
class ModelCost:
    """Usage of one model summed across the window."""
    model: str
    tokens: TokenCounts
    cost: CostBreakdown
    priced: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "tokens": self.tokens.to_dict(),
            "cost": float(self.cost.total),
            "cost_breakdown": self.cost.to_dict(),
            "priced": self.priced,
        }


@dataclass(frozen=True)
class DailyCost:
    """All model usage of one day."""
    day: date
    models: List[ModelDayCost]

    @property
    def total(self) -> Decimal:
        return sum((m.cost.total for m in self.models), Decimal("0"))

    @property
    def tokens(self) -> TokenCounts:
        return sum((m.tokens for m in self.models), ZERO_TOKENS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "total_cost": float(self.total),
            "models": [m.to_dict() for m in self.models],
        }


@dataclass(frozen=True)
class CostSummary:
    """Token cost over a window of days."""
    total_cost: Decimal
    today_cost: Decimal
    tokens: TokenCounts
    days: Optional[int] = None
    by_model: List[ModelCost] = field(default_factory=list)
    daily: List[DailyCost] = field(default_factory=list)
    unpriced_models: List[str] = field(default_factory=list)

    def without_breakdown(self) -> "CostSummary":
        """Drop the per-model and per-day detail."""
        return replace(self, by_model=[], daily=[])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_cost": float(self.total_cost),
            "today_cost": float(self.today_cost),
            "days": self.days,
            "tokens": self.tokens.to_dict(),
            "by_model": [m.to_dict() for m in self.by_model],
            "daily": [d.to_dict() for d in self.daily],
            "unpriced_models": list(self.unpriced_models),
        }


EMPTY_SUMMARY = CostSummary(total_cost=Decimal("0"), today_cost=Decimal("0"), tokens=ZERO_TOKENS)


@dataclass(frozen=True)
class TokenCostSnapshot:
    """Result of one cost pass; rebuilt every run, never persisted."""
    summary: CostSummary
    by_provider: Dict[Provider, CostSummary]
    direct_cost: Decimal = Decimal("0")
    routed_cost: Decimal = Decimal("0")
    files_scanned: int = 0
    files_skipped: int = 0
    record_errors: int = 0
    degraded_files: List[str] = field(default_factory=list)

    @property
    def total_cost(self) -> Decimal:
        return self.summary.total_cost

    @property
    def today_cost(self) -> Decimal:
        return self.summary.today_cost

    @property
    def daily(self) -> List[DailyCost]:
        return self.summary.daily

    @property
    def by_model(self) -> List[ModelCost]:
        return self.summary.by_model

    @property
    def unpriced_models(self) -> List[str]:
        return self.summary.unpriced_models

    def for_provider(self, provider: Provider) -> CostSummary:
        return self.by_provider.get(provider, replace(EMPTY_SUMMARY, days=self.summary.days))

    def to_dict(self, detailed: bool = True) -> Dict[str, Any]:
        summary = self.summary if detailed else self.summary.without_breakdown()
        data = summary.to_dict()
        data.update({
            "by_provider": {
                provider.id: (s if detailed else s.without_breakdown()).to_dict()
                for provider, s in self.by_provider.items()
            },
            "direct_cost": float(self.direct_cost),
            "routed_cost": float(self.routed_cost),
            "files_scanned": self.files_scanned,
            "files_skipped": self.files_skipped,
            "record_errors": self.record_errors,
            "degraded_files": list(self.degraded_files),
        })
        return data


def summarize(
    usage: Dict[Tuple[str, date], TokenCounts],
    pricing: PricingTable,
    days: Optional[int],
    today: date,
    provider: Optional[Provider] = None,
) -> CostSummary:
    """Price (model, day) token totals and build a CostSummary."""
    day_rows: Dict[date, List[ModelDayCost]] = {}
    model_tokens: Dict[str, TokenCounts] = {}
    model_costs: Dict[str, CostBreakdown] = {}
    unpriced = set()

    for (model, day), tokens in usage.items():
        model_pricing = pricing.get_pricing(model)
        cost = calculate_cost(model_pricing, tokens)
        if not model_pricing.priced:
            unpriced.add(model)
        day_rows.setdefault(day, []).append(
            ModelDayCost(model, day, tokens, cost, model_pricing.priced, provider)
        )
        model_tokens[model] = model_tokens.get(model, ZERO_TOKENS) + tokens
        model_costs[model] = model_costs.get(model, ZERO_COST) + cost

    daily = [
        DailyCost(day, sorted(rows, key=lambda r: (-r.cost.total, r.model)))
        for day, rows in sorted(day_rows.items())
    ]
    by_model = sorted(
        (ModelCost(model, model_tokens[model], model_costs[model], model not in unpriced)
         for model in model_tokens),
        key=lambda m: (-m.cost.total, m.model),
    )
    total = sum((m.cost.total for m in by_model), Decimal("0"))
    today_cost = sum((d.total for d in daily if d.day == today), Decimal("0"))

    return CostSummary(
        total_cost=total,
        today_cost=today_cost,
        tokens=sum(model_tokens.values(), ZERO_TOKENS),
        days=days,
        by_model=by_model,
        daily=daily,
        unpriced_models=sorted(unpriced),
    )


def aggregate_costs(
    entries: Iterable,
    pricing: PricingTable = PRICING_TABLE,
    days: Optional[int] = None,
    today: Optional[date] = None,
    provider: Optional[Provider] = None,
) -> TokenCostSnapshot:
    """Price and summarize cached token aggregates.

    Args:
        entries: Cache entries to aggregate
        pricing: Pricing table used for every model
        days: Only include the last ``days`` days (including today); None for all
        today: Reference UTC date for the window and the today figure
        provider: Only include usage attributed to this provider

    Returns:
        TokenCostSnapshot with overall and per-provider summaries
    """
    if days is not None and days <= 0:
        raise ValueError("days must be positive")
    today = today or utc_today()
    since = today - timedelta(days=days - 1) if days is not None else None

    per_provider: Dict[Provider, Dict[Tuple[str, date], TokenCounts]] = {}
    overall: Dict[Tuple[str, date], TokenCounts] = {}
    record_errors = 0

    for entry in entries:
        record_errors += entry.record_errors
        for key, tokens in entry.aggregate.items():
            if since is not None and key.day < since:
                continue
            billed_to = attribute(entry.origin, key.model, key.route_tag)
            if provider is not None and billed_to is not provider:
                continue
            model_day = (key.model, key.day)
            bucket = per_provider.setdefault(billed_to, {})
            bucket[model_day] = bucket.get(model_day, ZERO_TOKENS) + tokens
            overall[model_day] = overall.get(model_day, ZERO_TOKENS) + tokens

    by_provider = {
        p: summarize(per_provider[p], pricing, days, today, p)
        for p in Provider if p in per_provider
    }
    direct = sum(
        (s.total_cost for p, s in by_provider.items() if p in ORIGIN_PROVIDERS.values()),
        Decimal("0"),
    )
    routed = sum(
        (s.total_cost for p, s in by_provider.items() if p not in ORIGIN_PROVIDERS.values()),
        Decimal("0"),
    )

    return TokenCostSnapshot(
        summary=summarize(overall, pricing, days, today),
        by_provider=by_provider,
        direct_cost=direct,
        routed_cost=routed,
        record_errors=record_errors,
    )
