"""
Concurrent provider fetch orchestration.

Starts one task per requested provider, bounds each by its own deadline
and collects exactly one result per provider in request order. A slow or
failing provider only ever affects its own result.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..providers.base import (
    CreditsSnapshot,
    FetchFn,
    FetchOutcome,
    Provider,
    ProviderFetchError,
    StatusFn,
    StatusInfo,
    UsageSnapshot,
)
from .aggregator import CostSummary

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
DEFAULT_STATUS_TIMEOUT = 5.0

__all__ = [
    "DEFAULT_TIMEOUT",
    "FetchFailure",
    "FetchFailureKind",
    "FetchFn",
    "FetchOutcome",
    "FetchTask",
    "FetchTaskState",
    "ProviderFetchResult",
    "fetch_all",
    "run_fetch",
]


class FetchFailureKind(Enum):
    """Why a provider produced no usage data."""
    MISSING_AUTH = "missing_auth"
    NETWORK_ERROR = "network_error"
    MALFORMED_RESPONSE = "malformed_response"
    UNSUPPORTED = "unsupported"
    TIMEOUT = "timeout"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class FetchFailure:
    """Classified failure attached to one provider result."""
    kind: FetchFailureKind
    message: str

    @classmethod
    def from_error(cls, error: ProviderFetchError) -> "FetchFailure":
        return cls(FetchFailureKind(error.kind), str(error) or type(error).__name__)

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


@dataclass(frozen=True)
class ProviderFetchResult:
    """Outcome for one provider: data, or a failure, never both."""
    provider: Provider
    usage: Optional[UsageSnapshot] = None
    credits: Optional[CreditsSnapshot] = None
    failure: Optional[FetchFailure] = None
    status: Optional[StatusInfo] = None
    cost: Optional[CostSummary] = None
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.failure is None and self.usage is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.id,
            "display_name": self.provider.display_name,
            "ok": self.ok,
            "usage": self.usage.to_dict() if self.usage else None,
            "credits": self.credits.to_dict() if self.credits else None,
            "failure": self.failure.to_dict() if self.failure else None,
            "status": self.status.to_dict() if self.status else None,
            "cost": self.cost.to_dict() if self.cost else None,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


class FetchTaskState(Enum):
    """Lifecycle of one in-flight provider fetch."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class FetchTask:
    """Bookkeeping for one provider fetch; discarded after collection."""
    provider: Provider
    deadline: float
    state: FetchTaskState = FetchTaskState.PENDING
    started_at: Optional[float] = None

    def __post_init__(self):
        """Validate deadline is positive."""
        if self.deadline <= 0:
            raise ValueError("deadline must be positive")


async def _run_task(task: FetchTask, fetch: Optional[FetchFn]) -> ProviderFetchResult:
    loop = asyncio.get_running_loop()
    task.state = FetchTaskState.RUNNING
    task.started_at = loop.time()

    def finish(state: FetchTaskState, **fields) -> ProviderFetchResult:
        task.state = state
        elapsed = loop.time() - task.started_at
        return ProviderFetchResult(provider=task.provider, elapsed_seconds=elapsed, **fields)

    if fetch is None:
        failure = FetchFailure(FetchFailureKind.UNSUPPORTED, f"No fetcher for {task.provider.display_name}")
        return finish(FetchTaskState.FAILED, failure=failure)

    try:
        usage, credits = await asyncio.wait_for(fetch(), timeout=task.deadline)
    except asyncio.TimeoutError:
        logger.info("%s fetch timed out after %.1fs", task.provider.display_name, task.deadline)
        failure = FetchFailure(FetchFailureKind.TIMEOUT, f"Timed out after {task.deadline:g}s")
        return finish(FetchTaskState.TIMED_OUT, failure=failure)
    except ProviderFetchError as e:
        logger.info("%s fetch failed: %s", task.provider.display_name, e)
        return finish(FetchTaskState.FAILED, failure=FetchFailure.from_error(e))
    except Exception as e:
        logger.exception("Unexpected error fetching %s", task.provider.display_name)
        failure = FetchFailure(FetchFailureKind.INTERNAL_ERROR, f"{type(e).__name__}: {e}")
        return finish(FetchTaskState.FAILED, failure=failure)

    return finish(FetchTaskState.SUCCEEDED, usage=usage, credits=credits)


async def _run_status(provider: Provider, fetch: StatusFn, timeout: float) -> Optional[StatusInfo]:
    try:
        return await asyncio.wait_for(fetch(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.info("%s status check timed out", provider.display_name)
    except ProviderFetchError as e:
        logger.info("%s status check failed: %s", provider.display_name, e)
    except Exception:
        logger.exception("Unexpected error checking %s status", provider.display_name)
    return None


async def fetch_all(
    providers: Sequence[Provider],
    fetchers: Mapping[Provider, FetchFn],
    timeout: float = DEFAULT_TIMEOUT,
    status_fetchers: Optional[Mapping[Provider, StatusFn]] = None,
    status_timeout: Optional[float] = None,
) -> List[ProviderFetchResult]:
    """Fetch usage from every provider concurrently.

    Args:
        providers: Providers to fetch, in output order
        fetchers: Fetch coroutine function per provider
        timeout: Per-provider deadline in seconds
        status_fetchers: Optional health-status fetchers, run as separate tasks
        status_timeout: Deadline for status tasks (defaults to ``timeout``)

    Returns:
        One ProviderFetchResult per provider, in the order requested
    """
    tasks = [FetchTask(provider, timeout) for provider in providers]
    usage_jobs = [
        asyncio.create_task(_run_task(task, fetchers.get(task.provider)))
        for task in tasks
    ]

    status_fetchers = status_fetchers or {}
    status_deadline = status_timeout if status_timeout is not None else timeout
    status_jobs = {
        provider: asyncio.create_task(_run_status(provider, status_fetchers[provider], status_deadline))
        for provider in dict.fromkeys(providers)
        if provider in status_fetchers
    }

    results = await asyncio.gather(*usage_jobs)
    statuses = dict(zip(status_jobs, await asyncio.gather(*status_jobs.values())))

    return [
        replace(result, status=statuses.get(result.provider)) if statuses.get(result.provider) else result
        for result in results
    ]


def run_fetch(
    providers: Sequence[Provider],
    fetchers: Mapping[Provider, FetchFn],
    timeout: float = DEFAULT_TIMEOUT,
    status_fetchers: Optional[Mapping[Provider, StatusFn]] = None,
    status_timeout: Optional[float] = None,
) -> List[ProviderFetchResult]:
    """Synchronous wrapper around ``fetch_all``."""
    return asyncio.run(fetch_all(providers, fetchers, timeout, status_fetchers, status_timeout))
