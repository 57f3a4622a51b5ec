"""Proxy-relayed page fetch and static HTML extraction.

The relay is a plain GET to ``settings.proxy_url_template`` with the target
URL substituted in, which sidesteps the CORS / frame restrictions that block
the rendering capability.  The returned HTML is never executed; selectors are
applied with BeautifulSoup and readable text comes from trafilatura.
"""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import quote

import httpx
import trafilatura
from bs4 import BeautifulSoup

from factscout.config import settings
from factscout.errors import BlockedByOrigin, NetworkError
from factscout.extraction.models import SelectorSpec


def relay_url(url: str, template: str | None = None) -> str:
    template = template or settings.proxy_url_template
    return template.format(url=quote(url, safe=""))


async def fetch_via_proxy(url: str, timeout: float | None = None) -> str:
    """Fetch *url* through the relay and return the page HTML."""
    timeout = timeout if timeout is not None else settings.api_timeout
    try:
        async with httpx.AsyncClient(
            headers={"User-Agent": settings.user_agent},
            timeout=timeout,
            follow_redirects=True,
        ) as client:
            response = await client.get(relay_url(url))
    except httpx.TransportError as exc:
        raise NetworkError(f"proxy fetch of {url} failed: {exc!r}") from exc

    if response.status_code in (401, 403, 451):
        raise BlockedByOrigin(f"proxy refused {url}: HTTP {response.status_code}")
    if response.status_code != 200:
        raise NetworkError(f"proxy fetch of {url}: HTTP {response.status_code}")
    if not response.text.strip():
        raise NetworkError(f"proxy returned an empty body for {url}")
    return response.text


def _read(element: Any, spec: SelectorSpec) -> str | None:
    raw = element.get(spec.attribute) if spec.attribute else element.get_text(" ", strip=True)
    if isinstance(raw, list):
        raw = " ".join(raw)
    raw = (raw or "").strip()
    return raw or None


def extract_with_selectors(html: str, specs: Mapping[str, SelectorSpec]) -> dict[str, Any]:
    """Apply each selector spec to static *html*; unmatched fields map to ``None``."""
    soup = BeautifulSoup(html, "html.parser")
    data: dict[str, Any] = {}
    for name, spec in specs.items():
        if spec.multiple:
            values = [v for v in (_read(el, spec) for el in soup.select(spec.selector)) if v]
            data[name] = values or None
        else:
            element = soup.select_one(spec.selector)
            data[name] = _read(element, spec) if element is not None else None
    return data


def page_text(html: str, url: str = "", limit: int | None = None) -> str:
    """Readable text of *html*, capped at *limit* characters.

    Uses trafilatura first and falls back to BeautifulSoup's visible text of
    the main content container.
    """
    limit = limit if limit is not None else settings.page_text_limit
    text: str | None = trafilatura.extract(
        html,
        include_links=False,
        include_images=False,
        include_tables=True,
        url=url or None,
    )
    if not text:
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup(["script", "style", "nav", "footer", "header"]):
            tag.decompose()
        container = soup.find("main") or soup.find("article") or soup.body or soup
        text = container.get_text(separator=" ", strip=True)
    return " ".join(text.split())[:limit]
