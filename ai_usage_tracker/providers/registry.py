"""
Provider fetch registry.

Binds every Provider to exactly one fetch coroutine. Providers without a
client are bound to a fetch that reports them as unsupported, so the
orchestrator never has to know which providers are real.
"""

from functools import partial
from typing import Dict, Iterable, Mapping, Optional

from . import claude, kimi_k2, openrouter
from .base import FetchFn, FetchOutcome, Provider, StatusFn, UnsupportedProviderError
from .status import fetch_status


async def _unsupported(provider: Provider) -> FetchOutcome:
    raise UnsupportedProviderError(f"{provider.display_name} usage fetching is not supported")


def fetcher_for(provider: Provider, api_key: Optional[str] = None) -> FetchFn:
    """Return the zero-argument fetch coroutine function for a provider.

    Args:
        provider: Provider to fetch
        api_key: Key from configuration; clients fall back to their env var
    """
    if provider is Provider.CLAUDE:
        return claude.fetch_usage
    if provider is Provider.OPENROUTER:
        return partial(openrouter.fetch_usage, api_key=api_key)
    if provider is Provider.KIMI_K2:
        return partial(kimi_k2.fetch_usage, api_key=api_key)
    return partial(_unsupported, provider)


def build_fetchers(
    providers: Iterable[Provider],
    api_keys: Optional[Mapping[Provider, str]] = None,
) -> Dict[Provider, FetchFn]:
    api_keys = api_keys or {}
    return {p: fetcher_for(p, api_keys.get(p)) for p in providers}


def build_status_fetchers(providers: Iterable[Provider]) -> Dict[Provider, StatusFn]:
    """Status fetchers for the providers that have a status page."""
    return {
        p: partial(fetch_status, p)
        for p in providers
        if p.status_page_url is not None
    }
