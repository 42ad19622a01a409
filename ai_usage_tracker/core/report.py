"""
Combined usage report.

Runs the token cost pass in a worker thread while provider fetches run on
the event loop, then attaches each cost-scannable provider's CostSummary
to that provider's fetch result.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..providers.base import FetchFn, Provider, StatusFn
from ..storage.cache import CostCache
from .aggregator import COST_PROVIDERS, TokenCostSnapshot
from .cost_engine import origins_for_provider, run_cost_scan
from .orchestrator import DEFAULT_STATUS_TIMEOUT, DEFAULT_TIMEOUT, ProviderFetchResult, fetch_all
from .pricing import PRICING_TABLE, PricingTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageReport:
    """Everything one ``ait usage`` run produced."""
    results: List[ProviderFetchResult]
    generated_at: datetime
    cost: Optional[TokenCostSnapshot] = None
    cost_error: Optional[str] = None
    detailed: bool = False

    @property
    def failures(self) -> List[ProviderFetchResult]:
        return [r for r in self.results if not r.ok]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "generated_at": self.generated_at.isoformat(),
            "providers": [r.to_dict() for r in self.results],
        }
        if self.cost is not None:
            data["cost"] = self.cost.to_dict(detailed=self.detailed)
        if self.cost_error is not None:
            data["cost_error"] = self.cost_error
        return data


def _cost_scan(
    providers: Sequence[Provider],
    cost_days: Optional[int],
    cache_path: Optional[Union[str, Path]],
    pricing: PricingTable,
) -> TokenCostSnapshot:
    origins = []
    for provider in providers:
        for origin in origins_for_provider(provider):
            if origin not in origins:
                origins.append(origin)
    # One requested provider narrows the aggregate to usage billed to it
    only = providers[0] if len(providers) == 1 else None
    cache = CostCache.load(cache_path)
    return run_cost_scan(cache=cache, origins=origins, days=cost_days, pricing=pricing, provider=only)


async def build_report(
    providers: Sequence[Provider],
    fetchers: Mapping[Provider, FetchFn],
    timeout: float = DEFAULT_TIMEOUT,
    include_status: bool = False,
    cost_days: Optional[int] = None,
    cache_path: Optional[Union[str, Path]] = None,
    pricing: PricingTable = PRICING_TABLE,
    detailed: bool = False,
    status_fetchers: Optional[Mapping[Provider, StatusFn]] = None,
) -> UsageReport:
    """Fetch live usage and token costs concurrently.

    Args:
        providers: Providers to report on, in output order
        fetchers: Fetch coroutine function per provider
        timeout: Per-provider fetch deadline in seconds
        include_status: Also fetch service health status
        cost_days: Date window of the cost pass
        cache_path: Cost cache location (defaults to the XDG cache dir)
        pricing: Pricing table for the cost pass
        detailed: Keep per-model and per-day cost breakdowns
        status_fetchers: Health-status fetchers, used when include_status is set

    Returns:
        UsageReport; cost problems are reported in ``cost_error``, never raised
    """
    cost_providers = [p for p in providers if p in COST_PROVIDERS]
    cost_job = None
    if cost_providers:
        cost_job = asyncio.create_task(
            asyncio.to_thread(_cost_scan, cost_providers, cost_days, cache_path, pricing)
        )

    results = await fetch_all(
        providers,
        fetchers,
        timeout=timeout,
        status_fetchers=status_fetchers if include_status else None,
        status_timeout=min(timeout, DEFAULT_STATUS_TIMEOUT),
    )

    cost: Optional[TokenCostSnapshot] = None
    cost_error: Optional[str] = None
    if cost_job is not None:
        try:
            cost = await cost_job
        except Exception as e:
            logger.exception("Token cost scan failed")
            cost_error = f"{type(e).__name__}: {e}"

    if cost is not None:
        results = [
            replace(r, cost=_summary_for(cost, r.provider, detailed)) if r.provider in COST_PROVIDERS else r
            for r in results
        ]

    return UsageReport(
        results=results,
        generated_at=datetime.now(timezone.utc),
        cost=cost,
        cost_error=cost_error,
        detailed=detailed,
    )


def _summary_for(cost: TokenCostSnapshot, provider: Provider, detailed: bool):
    summary = cost.for_provider(provider)
    return summary if detailed else summary.without_breakdown()
