"""Crawl endpoints with Server-Sent Events (SSE) streaming.

Routes
------
POST /crawl          Body: {"start_url": "...", "max_pages": 10, ...}
POST /crawl/stop     Stop the active run
GET  /crawl/status   Whether a run is active, with the latest partial result

The crawl runs as a task on the server's event loop; every event the crawler
publishes is forwarded as one SSE frame.

SSE event format
----------------
Each event is a JSON-encoded object on the ``data:`` line::

    data: {"event": "progress", "percent": 20.0, "message": "...", "partial_result": {...}}

    data: {"event": "error", "message": "Link extraction failed for ..."}

    data: {"event": "done", "result": {...}}
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from factscout.api.deps import get_crawler
from factscout.config import settings
from factscout.crawler.crawler import Crawler
from factscout.crawler.models import CrawlConfig
from factscout.errors import AlreadyRunning
from factscout.events import Event, event_to_dict
from factscout.extraction.models import PageExtractionOptions, SelectorSpec

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class CrawlRequest(BaseModel):
    start_url: str
    max_pages: Optional[int] = None
    depth_limit: Optional[int] = None
    url_include_patterns: list[str] = []
    url_exclude_patterns: list[str] = []
    follow_external_links: bool = False
    delay: Optional[float] = None
    selectors: dict[str, str] = {}
    use_proxy: bool = False
    use_ai: bool = True

    def to_config(self) -> CrawlConfig:
        return CrawlConfig(
            start_url=self.start_url,
            max_pages=self.max_pages if self.max_pages is not None else settings.crawl_max_pages,
            depth_limit=self.depth_limit if self.depth_limit is not None else settings.crawl_depth_limit,
            url_include_patterns=tuple(self.url_include_patterns),
            url_exclude_patterns=tuple(self.url_exclude_patterns),
            follow_external_links=self.follow_external_links,
            delay=self.delay if self.delay is not None else settings.crawl_delay,
            page_options=PageExtractionOptions(
                field_selectors={name: SelectorSpec(css) for name, css in self.selectors.items()},
                use_proxy=self.use_proxy,
                use_ai_analysis=self.use_ai,
            ),
        )


# ---------------------------------------------------------------------------
# SSE helpers
# ---------------------------------------------------------------------------

def _sse(payload: dict[str, Any]) -> str:
    """Format a payload dict as a single SSE ``data:`` line."""
    return f"data: {json.dumps(payload, default=str)}\n\n"


async def _crawl_sse_generator(crawler: Crawler, config: CrawlConfig) -> AsyncIterator[str]:
    """Yield SSE frames for the duration of one crawl run.

    A ``None`` sentinel is enqueued when the run task finishes (success or
    error) so the generator knows to stop.  If the client disconnects first,
    the run is stopped.
    """
    queue: asyncio.Queue[str | None] = asyncio.Queue()

    def _forward(event: Event) -> None:
        queue.put_nowait(_sse(event_to_dict(event)))

    unsubscribe = crawler.events.subscribe(_forward)

    async def _run() -> None:
        try:
            await crawler.start(config)
        except Exception as exc:  # noqa: BLE001
            queue.put_nowait(_sse({"event": "error", "message": str(exc)}))
        finally:
            queue.put_nowait(None)  # sentinel

    task = asyncio.create_task(_run())
    try:
        while True:
            item = await queue.get()
            if item is None:
                break
            yield item
    finally:
        unsubscribe()
        if not task.done():
            crawler.stop()
        await task


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("")
async def crawl(body: CrawlRequest, request: Request) -> StreamingResponse:
    """Start a crawl and stream its progress as SSE.

    Returns 409 when a crawl is already running and 400 for an invalid
    configuration.
    """
    try:
        config = body.to_config()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    crawler = await get_crawler(request)
    if crawler.is_active():
        raise HTTPException(status_code=409, detail=str(AlreadyRunning("a crawl is already running")))

    return StreamingResponse(
        _crawl_sse_generator(crawler, config),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",   # disable nginx proxy buffering
        },
    )


@router.post("/stop")
async def stop_crawl(request: Request) -> dict[str, Any]:
    crawler = request.app.state.crawler
    was_active = bool(crawler is not None and crawler.is_active())
    if was_active:
        crawler.stop()
    return {"stopped": was_active}


@router.get("/status")
async def crawl_status(request: Request) -> dict[str, Any]:
    crawler = request.app.state.crawler
    if crawler is None or crawler.result is None:
        return {"active": False, "result": None}
    return {"active": crawler.is_active(), "result": crawler.result.to_dict()}
