"""FastAPI application factory.

Lifespan
--------
On startup the app creates the shared inference client, the configured
targets and a crawler.  The headless browser is *not* launched at startup;
``factscout.api.deps.get_renderer`` starts it on first use and the lifespan
closes it on shutdown.  Tests (or embedders) may put any ``RenderingCapability`` on
``app.state.renderer`` beforehand.

Routers
-------
    /extract      one-shot extraction for a query or URL (+ consensus, targets)
    /crawl        breadth-first crawl streamed as Server-Sent Events
    /inference    credential pool status, reset and query classification
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from factscout.extraction.targets import DEFAULT_TARGETS
from factscout.inference.client import get_inference_client

from factscout.api.routers import crawl as crawl_router
from factscout.api.routers import extract as extract_router
from factscout.api.routers import inference as inference_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Set up shared collaborators; close the browser on shutdown."""
    app.state.inference = get_inference_client()
    app.state.targets = DEFAULT_TARGETS
    app.state.renderer = None
    app.state.crawler = None
    try:
        yield
    finally:
        renderer = app.state.renderer
        if renderer is not None:
            await renderer.close()


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="FactScout API",
        description=(
            "Structured fact extraction from live web pages through an ordered "
            "fallback chain (API, rendered DOM, AI analysis, proxy relay), "
            "bounded breadth-first crawling streamed over Server-Sent Events, "
            "and inference credential management."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(extract_router.router, prefix="/extract", tags=["extract"])
    app.include_router(crawl_router.router, prefix="/crawl", tags=["crawl"])
    app.include_router(inference_router.router, prefix="/inference", tags=["inference"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn factscout.api.app:app --reload
app = create_app()
