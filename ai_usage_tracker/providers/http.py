"""
Shared HTTP helpers for provider clients.

Wraps httpx so that every client reports transport problems, HTTP errors
and undecodable bodies as the same classified fetch errors.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .base import MalformedResponseError, MissingAuthError, ProviderNetworkError

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 10.0
USER_AGENT = "ai-usage-tracker"


def build_client(timeout: float = DEFAULT_HTTP_TIMEOUT) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout, headers={"User-Agent": USER_AGENT})


def bearer_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}", "Accept": "application/json"}


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    auth_hint: Optional[str] = None,
) -> Any:
    """GET ``url`` and decode the JSON body.

    Args:
        client: Client to send the request with
        url: Endpoint URL
        headers: Extra request headers
        auth_hint: Appended to the error message on 401/403

    Returns:
        Decoded JSON body

    Raises:
        MissingAuthError: On 401 or 403
        ProviderNetworkError: On transport failure or any other non-2xx status
        MalformedResponseError: If the body is not JSON
    """
    try:
        response = await client.get(url, headers=headers)
    except httpx.HTTPError as e:
        raise ProviderNetworkError(f"Request to {url} failed: {e}") from e

    if response.status_code in (401, 403):
        message = f"Unauthorized (HTTP {response.status_code})"
        if auth_hint:
            message = f"{message}: {auth_hint}"
        raise MissingAuthError(message)
    if response.is_error:
        body = response.text[:200]
        raise ProviderNetworkError(f"HTTP {response.status_code} from {url}: {body}")

    try:
        return response.json()
    except ValueError as e:
        raise MalformedResponseError(f"Invalid JSON from {url}: {e}") from e
