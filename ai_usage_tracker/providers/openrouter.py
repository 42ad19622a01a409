"""
OpenRouter credits client.

Reads the account credit balance and, when the API key carries a spending
limit, reports the share of that limit already used as a rate window.
"""

import os
from typing import Any, Mapping, Optional

import httpx

from .base import (
    CreditsSnapshot,
    FetchOutcome,
    MalformedResponseError,
    MissingAuthError,
    Provider,
    ProviderFetchError,
    RateWindow,
    UsageSnapshot,
)
from .http import bearer_headers, build_client, get_json

CREDITS_URL = "https://openrouter.ai/api/v1/credits"
KEY_URL = "https://openrouter.ai/api/v1/key"
API_KEY_ENV = "OPENROUTER_API_KEY"


def _number(data: Mapping[str, Any], name: str) -> Optional[float]:
    value = data.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedResponseError(f"{name} is not a number: {value!r}")
    return float(value)


def _data(body: Any) -> Mapping[str, Any]:
    if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
        raise MalformedResponseError("OpenRouter response has no data object")
    return body["data"]


def parse_credits(body: Any) -> CreditsSnapshot:
    data = _data(body)
    total_credits = _number(data, "total_credits") or 0.0
    total_usage = _number(data, "total_usage") or 0.0
    balance = max(0.0, total_credits - total_usage)
    return CreditsSnapshot(
        remaining=balance,
        has_credits=balance > 0.0,
        used=total_usage,
        limit=total_credits,
        currency="usd",
    )


def parse_key_window(body: Any) -> Optional[RateWindow]:
    """Usage against the key's spending limit; None for keys without a limit."""
    data = _data(body)
    limit = _number(data, "limit")
    if limit is None or limit <= 0.0:
        return None
    usage = _number(data, "usage") or 0.0
    return RateWindow(used_percent=min(100.0, usage / limit * 100.0), window_minutes=0)


async def _fetch(client: httpx.AsyncClient, api_key: str) -> FetchOutcome:
    headers = bearer_headers(api_key)
    credits = parse_credits(
        await get_json(client, CREDITS_URL, headers, auth_hint=f"check your {API_KEY_ENV}")
    )
    # The key endpoint is optional detail; its failure leaves the window empty
    try:
        primary = parse_key_window(await get_json(client, KEY_URL, headers))
    except ProviderFetchError:
        primary = None
    usage = UsageSnapshot(provider=Provider.OPENROUTER, source="api", primary=primary)
    return usage, credits


async def fetch_usage(
    client: Optional[httpx.AsyncClient] = None,
    api_key: Optional[str] = None,
) -> FetchOutcome:
    """Fetch the OpenRouter credit balance."""
    api_key = api_key or os.environ.get(API_KEY_ENV)
    if not api_key:
        raise MissingAuthError(f"{API_KEY_ENV} is not set")
    if client is not None:
        return await _fetch(client, api_key)
    async with build_client() as own_client:
        return await _fetch(own_client, api_key)
