"""
Claude usage client.

Reads the OAuth access token that the Claude CLI stores in
``~/.claude/.credentials.json`` and queries the OAuth usage endpoint for
the session (5 hour), weekly and weekly-Sonnet rate windows.
"""

import asyncio
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import httpx

from .base import (
    CreditsSnapshot,
    FetchOutcome,
    MalformedResponseError,
    MissingAuthError,
    Provider,
    ProviderIdentity,
    RateWindow,
    UsageSnapshot,
)
from .http import bearer_headers, build_client, get_json

logger = logging.getLogger(__name__)

USAGE_URL = "https://api.anthropic.com/api/oauth/usage"
OAUTH_BETA = "oauth-2025-04-20"

SESSION_MINUTES = 300
WEEK_MINUTES = 10080


def credentials_path() -> Path:
    config_dir = os.environ.get("CLAUDE_CONFIG_DIR")
    root = Path(config_dir) if config_dir else Path(os.path.expanduser("~")) / ".claude"
    return root / ".credentials.json"


def read_access_token(path: Optional[Union[str, Path]] = None) -> str:
    """Read the Claude OAuth access token.

    Raises:
        MissingAuthError: If the credentials file is missing, unreadable or has no token
    """
    path = Path(path) if path is not None else credentials_path()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise MissingAuthError(f"No Claude credentials at {path}; run `claude` to log in")
    except (OSError, ValueError) as e:
        raise MissingAuthError(f"Could not read Claude credentials {path}: {e}")

    oauth = data.get("claudeAiOauth") if isinstance(data, dict) else None
    token = oauth.get("accessToken") if isinstance(oauth, dict) else None
    if not isinstance(token, str) or not token:
        raise MissingAuthError(f"No access token in Claude credentials {path}")
    return token


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_window(raw: Mapping[str, Any], window_minutes: int) -> RateWindow:
    """Convert one usage window to a RateWindow.

    Utilization arrives either as a fraction (0-1) or a percentage (0-100);
    values above 1 are taken as percentages.
    """
    utilization = raw.get("utilization")
    if isinstance(utilization, bool) or not isinstance(utilization, (int, float)):
        raise MalformedResponseError(f"utilization is not a number: {utilization!r}")
    used_percent = float(utilization) if utilization > 1.0 else float(utilization) * 100.0
    return RateWindow(
        used_percent=used_percent,
        window_minutes=window_minutes,
        resets_at=_parse_datetime(raw.get("resets_at")),
    )


def parse_extra_usage(raw: Mapping[str, Any]) -> Optional[CreditsSnapshot]:
    """Convert the extra-usage block (amounts in cents) to dollars."""
    if raw.get("is_enabled") is not True:
        return None
    used_cents = raw.get("used_credits")
    limit_cents = raw.get("monthly_limit")
    used = used_cents / 100.0 if isinstance(used_cents, (int, float)) else None
    limit = limit_cents / 100.0 if isinstance(limit_cents, (int, float)) else None
    remaining = max(0.0, limit - used) if used is not None and limit is not None else 0.0
    return CreditsSnapshot(
        remaining=remaining,
        has_credits=True,
        unlimited=False,
        used=used,
        limit=limit,
        currency=raw.get("currency"),
        period="Monthly",
    )


def parse_usage_response(data: Any) -> FetchOutcome:
    """Build the usage snapshot and credits from an OAuth usage response."""
    if not isinstance(data, dict):
        raise MalformedResponseError("Claude usage response is not an object")

    def window(name: str, minutes: int) -> Optional[RateWindow]:
        raw = data.get(name)
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise MalformedResponseError(f"{name} is not an object")
        return parse_window(raw, minutes)

    identity = None
    if data.get("plan") is not None or data.get("email") is not None:
        identity = ProviderIdentity(email=data.get("email"), plan=data.get("plan"))

    extra = data.get("extra_usage")
    credits = parse_extra_usage(extra) if isinstance(extra, dict) else None

    usage = UsageSnapshot(
        provider=Provider.CLAUDE,
        source="oauth",
        primary=window("five_hour", SESSION_MINUTES),
        secondary=window("seven_day", WEEK_MINUTES),
        tertiary=window("seven_day_sonnet", WEEK_MINUTES),
        identity=identity,
    )
    return usage, credits


async def fetch_usage(
    client: Optional[httpx.AsyncClient] = None,
    token: Optional[str] = None,
) -> FetchOutcome:
    """Fetch Claude rate windows through the OAuth usage endpoint."""
    if not token:
        token = await asyncio.to_thread(read_access_token)
    headers = bearer_headers(token)
    headers["anthropic-beta"] = OAUTH_BETA

    if client is not None:
        data = await get_json(client, USAGE_URL, headers, auth_hint="run `claude` to re-authenticate")
    else:
        async with build_client() as own_client:
            data = await get_json(own_client, USAGE_URL, headers, auth_hint="run `claude` to re-authenticate")
    return parse_usage_response(data)
