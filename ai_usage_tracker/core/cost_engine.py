"""
Token cost pass.

Runs discovery, incremental scanning, cache merge, persistence and
aggregation as one synchronous pass. The pass is blocking file I/O; the
report layer runs it in a worker thread next to the network fetches.
"""

import logging
from dataclasses import replace
from datetime import date
from typing import Callable, List, Optional, Sequence

from ..providers.base import Provider
from ..storage.cache import CostCache
from .aggregator import TokenCostSnapshot, aggregate_costs
from .discovery import LogOrigin, SessionLogFile, discover_session_logs
from .pricing import PRICING_TABLE, PricingTable
from .scanner import scan_file

logger = logging.getLogger(__name__)

DiscoverFn = Callable[[Sequence[LogOrigin]], List[SessionLogFile]]


def origins_for_provider(provider: Optional[Provider]) -> List[LogOrigin]:
    """Session-log producers whose records can be billed to ``provider``.

    None means every producer. Providers without local session logs get
    an empty list.
    """
    if provider is None:
        return list(LogOrigin)
    if provider in (Provider.CLAUDE, Provider.VERTEX_AI):
        return [LogOrigin.CLAUDE]
    if provider is Provider.CODEX:
        return [LogOrigin.CODEX]
    return []


def run_cost_scan(
    cache: Optional[CostCache] = None,
    origins: Optional[Sequence[LogOrigin]] = None,
    days: Optional[int] = None,
    pricing: PricingTable = PRICING_TABLE,
    today: Optional[date] = None,
    persist: bool = True,
    discover: DiscoverFn = discover_session_logs,
    provider: Optional[Provider] = None,
) -> TokenCostSnapshot:
    """Bring the cost cache up to date and aggregate it.

    Args:
        cache: Cache to update; loaded from its default path when None
        origins: Producers to scan (defaults to all)
        days: Date window passed to the aggregator
        pricing: Pricing table for the aggregator
        today: Reference date for the aggregator
        persist: Write the cache back when it changed
        discover: Log discovery function
        provider: Only aggregate usage attributed to this provider

    Returns:
        TokenCostSnapshot including scan counters
    """
    if cache is None:
        cache = CostCache.load()
    if origins is None:
        origins = list(LogOrigin)

    logs = discover(origins)
    scanned = 0
    skipped = 0
    degraded: List[str] = []

    for log_file in logs:
        result = scan_file(log_file, cache.get(log_file.path))
        if result is None:
            skipped += 1
            continue
        if result.degraded:
            degraded.append(log_file.path)
            continue
        cache.upsert(log_file.path, log_file.fingerprint, result, log_file.origin)
        scanned += 1

    # Degraded files keep their previous entry, so they count as live
    cache.retain((log_file.path for log_file in logs), origins)

    if persist:
        cache.persist()

    logger.info(
        "Cost scan: %d files scanned, %d unchanged, %d degraded",
        scanned, skipped, len(degraded),
    )

    entries = [entry for entry in cache.entries() if entry.origin in origins]
    snapshot = aggregate_costs(entries, pricing=pricing, days=days, today=today, provider=provider)
    return replace(
        snapshot,
        files_scanned=scanned,
        files_skipped=skipped,
        degraded_files=degraded,
    )
