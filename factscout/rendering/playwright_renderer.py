"""Headless Chromium implementation of :class:`RenderingCapability`.

Playwright is imported lazily so that code paths (and tests) that never
render a page don't need a browser installed.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from factscout.config import settings
from factscout.errors import RenderingError
from factscout.rendering.base import (
    EXTRACTION_ERROR,
    MESSAGE_TYPES,
    RenderingCapability,
    RenderMessage,
    RenderScript,
    new_request_id,
)


class PlaywrightRenderer(RenderingCapability):
    """One browser, one page, reused across navigations."""

    def __init__(self, headless: Optional[bool] = None, user_agent: Optional[str] = None) -> None:
        self._headless = settings.headless if headless is None else headless
        self._user_agent = user_agent or settings.user_agent
        self._playwright: Any = None
        self._browser: Any = None
        self._page: Any = None

    @property
    def current_url(self) -> Optional[str]:
        if self._page is None:
            return None
        url = self._page.url
        return None if url in ("", "about:blank") else url

    async def start(self) -> None:
        if self._page is not None:
            return
        from playwright.async_api import async_playwright  # noqa: PLC0415

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self._headless)
        self._page = await self._browser.new_page(user_agent=self._user_agent)
        print("[Renderer] browser started.")

    async def navigate(self, url: str, timeout: Optional[float] = None) -> None:
        await self.start()
        timeout = timeout if timeout is not None else settings.render_timeout
        try:
            await self._page.goto(
                url,
                timeout=int(timeout * 1000),
                wait_until="domcontentloaded",
            )
        except Exception as exc:
            raise RenderingError(f"navigation to {url} failed: {exc}") from exc

    async def evaluate_and_await(self, script: RenderScript, timeout: float) -> RenderMessage:
        if self._page is None:
            raise RenderingError("no page loaded; call navigate() first")

        request_id = new_request_id()
        args = {**script.args, "requestId": request_id}
        try:
            result = await asyncio.wait_for(self._page.evaluate(script.source, args), timeout)
        except asyncio.TimeoutError as exc:
            raise RenderingError(f"{script.kind} script timed out after {timeout:.1f}s") from exc
        except Exception as exc:
            raise RenderingError(f"{script.kind} script failed: {exc}") from exc

        return _to_message(result, request_id, script.kind)

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._playwright = self._browser = self._page = None

    async def __aenter__(self) -> "PlaywrightRenderer":
        await self.start()
        return self


def _to_message(result: Any, request_id: str, expected: str) -> RenderMessage:
    """Validate a raw script reply against the request that produced it."""
    if not isinstance(result, dict):
        raise RenderingError(f"{expected} script returned {type(result).__name__}, not an object")
    if result.get("requestId") != request_id:
        raise RenderingError(
            f"reply correlation mismatch: expected {request_id}, got {result.get('requestId')!r}"
        )
    message_type = result.get("type")
    if message_type not in MESSAGE_TYPES or message_type not in (expected, EXTRACTION_ERROR):
        raise RenderingError(f"unexpected reply type {message_type!r} for {expected}")

    payload = {k: v for k, v in result.items() if k not in ("type", "requestId")}
    return RenderMessage(type=message_type, request_id=request_id, payload=payload)
