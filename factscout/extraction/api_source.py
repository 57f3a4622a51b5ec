"""Direct machine-readable API fetches for the first step of the fallback chain."""

from __future__ import annotations

from typing import Any

import httpx

from factscout.config import settings
from factscout.errors import NetworkError, ParseError


async def fetch_json(url: str, timeout: float | None = None) -> Any:
    """GET *url* and return its decoded JSON body.

    Raises:
        NetworkError: Transport failure, timeout or any status other than 200.
        ParseError: The body is not valid JSON.
    """
    timeout = timeout if timeout is not None else settings.api_timeout
    headers = {"User-Agent": settings.user_agent, "Accept": "application/json"}
    try:
        async with httpx.AsyncClient(
            headers=headers,
            timeout=timeout,
            follow_redirects=True,
        ) as client:
            response = await client.get(url)
    except httpx.TransportError as exc:
        raise NetworkError(f"{url}: {exc!r}") from exc

    if response.status_code != 200:
        raise NetworkError(f"{url}: HTTP {response.status_code}")
    try:
        return response.json()
    except ValueError as exc:
        raise ParseError(f"{url}: body is not JSON") from exc
