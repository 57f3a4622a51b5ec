"""Shared request-scoped accessors for the routers."""

from __future__ import annotations

from fastapi import Request

from factscout.crawler.crawler import Crawler
from factscout.events import EventBus
from factscout.extraction.engine import ExtractionEngine
from factscout.inference.client import InferenceClient
from factscout.rendering.base import RenderingCapability
from factscout.rendering.playwright_renderer import PlaywrightRenderer


async def get_renderer(request: Request) -> RenderingCapability:
    """Return the app-wide renderer, launching Chromium on first use."""
    renderer = request.app.state.renderer
    if renderer is None:
        renderer = PlaywrightRenderer()
        await renderer.start()
        request.app.state.renderer = renderer
    return renderer


def get_inference(request: Request) -> InferenceClient:
    return request.app.state.inference


def build_engine(
    request: Request,
    renderer: RenderingCapability | None,
    ai_triage: bool | None = None,
) -> ExtractionEngine:
    return ExtractionEngine(
        targets=request.app.state.targets,
        renderer=renderer,
        inference=get_inference(request),
        ai_triage=ai_triage,
    )


async def get_crawler(request: Request) -> Crawler:
    """One crawler per app; it shares the renderer, so runs cannot overlap."""
    crawler = request.app.state.crawler
    if crawler is None:
        renderer = await get_renderer(request)
        events = EventBus()
        crawler = Crawler(
            renderer,
            engine=ExtractionEngine(
                targets=(), renderer=renderer, inference=get_inference(request), events=events
            ),
            events=events,
        )
        request.app.state.crawler = crawler
    return crawler
