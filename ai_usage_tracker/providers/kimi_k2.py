"""Kimi K2 credits client."""

import os
from typing import Any, Optional

import httpx

from .base import (
    CreditsSnapshot,
    FetchOutcome,
    MalformedResponseError,
    MissingAuthError,
    Provider,
    UsageSnapshot,
)
from .http import bearer_headers, build_client, get_json

CREDITS_URL = "https://kimi-k2.ai/api/user/credits"
API_KEY_ENV = "KIMI_K2_API_KEY"

# (used, remaining-or-total, second value is a total)
_KEY_PAIRS = (
    ("consumed", "remaining", False),
    ("used", "total", True),
    ("credits_used", "credits_remaining", False),
)


def _number(data: dict, name: str) -> Optional[float]:
    value = data.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def parse_credits(data: Any) -> CreditsSnapshot:
    """Read the balance from whichever key pair the response uses."""
    if not isinstance(data, dict):
        raise MalformedResponseError("Kimi K2 credits response is not an object")

    for used_key, other_key, is_total in _KEY_PAIRS:
        used = _number(data, used_key)
        other = _number(data, other_key)
        if used is not None and other is not None:
            remaining = max(0.0, other - used) if is_total else other
            break
    else:
        remaining = _number(data, "remaining")
        if remaining is None:
            remaining = _number(data, "credits_remaining") or 0.0
        used = next(
            (v for v in (_number(data, k) for k in ("consumed", "used", "credits_used")) if v is not None),
            None,
        )

    return CreditsSnapshot(remaining=remaining, has_credits=remaining > 0.0, used=used)


async def fetch_usage(
    client: Optional[httpx.AsyncClient] = None,
    api_key: Optional[str] = None,
) -> FetchOutcome:
    """Fetch the Kimi K2 credit balance."""
    api_key = api_key or os.environ.get(API_KEY_ENV)
    if not api_key:
        raise MissingAuthError(f"{API_KEY_ENV} is not set")

    headers = bearer_headers(api_key)
    hint = f"check {API_KEY_ENV}"
    if client is not None:
        data = await get_json(client, CREDITS_URL, headers, auth_hint=hint)
    else:
        async with build_client() as own_client:
            data = await get_json(own_client, CREDITS_URL, headers, auth_hint=hint)

    usage = UsageSnapshot(provider=Provider.KIMI_K2, source="api")
    return usage, parse_credits(data)
