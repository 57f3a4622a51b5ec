"""Bounded breadth-first crawler driving the extraction engine page by page.

Traversal
---------
A FIFO queue seeded with ``(start_url, 0)``.  Each loop iteration:

1. stop when the run was stopped, the queue is empty or ``max_pages`` is hit;
2. dequeue; already-visited URLs and URLs deeper than ``depth_limit`` are
   skipped immediately, without waiting the inter-request delay;
3. mark visited, publish progress, extract the page;
4. ask the renderer for the page's links and enqueue the filtered ones;
5. wait ``delay`` seconds.

Skips are free while every processed page pays the delay.  The delay exists
to pace requests to remote sites, and a skip makes no request.

Every way a run can end goes through :meth:`Crawler._finalize`, which stamps
the end time and publishes exactly one completion event.  A stopped run may
still be finishing its last page or delay; a new ``start`` waits for it to
unwind before touching any run state.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Callable, Optional

from factscout.config import settings
from factscout.crawler.links import filter_links, normalize_url
from factscout.crawler.models import CrawlConfig, CrawlPageResult, CrawlRunResult, CrawlState
from factscout.errors import AlreadyRunning, RenderingUnavailable
from factscout.events import CompletionEvent, ErrorEvent, EventBus, ProgressEvent
from factscout.extraction.engine import ExtractionEngine
from factscout.extraction.models import ExtractionResult
from factscout.rendering.base import CRAWLER_LINKS_EXTRACTED, RenderingCapability, RenderMessage
from factscout.rendering.scripts import link_extraction_script


def _failed_extraction(source: str, error: str, error_type: str) -> ExtractionResult:
    return ExtractionResult(
        success=False,
        data=None,
        source=source,
        timestamp=time.time(),
        elapsed_ms=0.0,
        error=error,
        error_type=error_type,
    )


class Crawler:
    """One crawl run at a time over a shared rendering capability."""

    def __init__(
        self,
        renderer: Optional[RenderingCapability],
        engine: Optional[ExtractionEngine] = None,
        events: Optional[EventBus] = None,
        render_timeout: Optional[float] = None,
    ) -> None:
        self.renderer = renderer
        self.engine = engine or ExtractionEngine(targets=(), renderer=renderer)
        self.events = events or EventBus()
        self.render_timeout = settings.render_timeout if render_timeout is None else render_timeout

        self._running = False
        self._finalized = True
        self._config: Optional[CrawlConfig] = None
        self._result: Optional[CrawlRunResult] = None
        self._queue: deque[tuple[str, int]] = deque()
        self._visited: set[str] = set()
        self._awaiting_links: dict[str, CrawlPageResult] = {}
        self._in_flight: Optional[tuple[str, int]] = None
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_active(self) -> bool:
        return self._running

    @property
    def result(self) -> Optional[CrawlRunResult]:
        return self._result

    async def start(
        self,
        config: CrawlConfig,
        on_progress: Optional[Callable[[ProgressEvent], Any]] = None,
        on_complete: Optional[Callable[[CrawlRunResult], Any]] = None,
        on_error: Optional[Callable[[str], Any]] = None,
    ) -> CrawlRunResult:
        """Run a crawl to completion (or until :meth:`stop`) and return its result.

        Page-level failures are recorded in the result and reported to
        *on_error*; they never raise.

        Raises:
            AlreadyRunning: This crawler already has an active run.
            RenderingUnavailable: The crawler was built without a renderer.
        """
        if self._running:
            raise AlreadyRunning(f"a crawl of {self._config.start_url if self._config else '?'} is active")
        if self.renderer is None:
            raise RenderingUnavailable("crawling requires a rendering capability")
        if not self._idle.is_set():
            print("[Crawler] waiting for the stopped run to unwind.")
            await self._idle.wait()
            if self._running:
                raise AlreadyRunning(f"a crawl of {self._config.start_url if self._config else '?'} is active")

        unsubscribers = [self.events.subscribe(self._adapter(on_progress, on_complete, on_error))]

        result = CrawlRunResult(start_url=config.start_url)
        self._config = config
        self._result = result
        self._queue = deque([(config.start_url, 0)])
        self._visited = set()
        self._awaiting_links = {}
        self._in_flight = None
        self._finalized = False
        self._running = True
        self._idle.clear()
        print(
            f"[Crawler] starting at {config.start_url} "
            f"(max_pages={config.max_pages}, depth_limit={config.depth_limit})"
        )

        try:
            state = await self._traverse(config, result)
            self._finalize(state)
        except Exception as exc:
            self.events.publish(ErrorEvent(f"crawl aborted: {exc}"))
            self._finalize(CrawlState.STOPPED)
            raise
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()
            self._idle.set()
        return result

    def stop(self) -> None:
        """Stop the active run; completion is reported immediately."""
        if not self._running:
            return
        print("[Crawler] stop requested.")
        self._finalize(CrawlState.STOPPED)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    async def _traverse(self, config: CrawlConfig, result: CrawlRunResult) -> CrawlState:
        while True:
            if not self._running:
                return CrawlState.STOPPED
            if result.pages_visited >= config.max_pages:
                return CrawlState.EXHAUSTED
            if not self._queue:
                return CrawlState.COMPLETED

            url, depth = self._queue.popleft()
            key = normalize_url(url)
            if key in self._visited:
                continue
            if depth > config.depth_limit:
                continue

            self._visited.add(key)
            result.pages_visited += 1
            self._in_flight = (url, depth)
            self.events.publish(
                ProgressEvent(
                    percent=round(result.pages_visited / config.max_pages * 100, 1),
                    message=f"Crawling {url} ({result.pages_visited}/{config.max_pages})",
                    partial_result=result.snapshot(),
                )
            )
            if self._finalized:
                return CrawlState.STOPPED

            extraction = await self._extract_page(url, config)
            if self._finalized:
                # Stopped while the page was in flight; its outcome is discarded.
                return CrawlState.STOPPED
            self._in_flight = None

            page = CrawlPageResult(url=url, depth=depth, extraction=extraction)
            result.pages.append(page)
            if extraction.success:
                result.pages_succeeded += 1
            else:
                result.pages_failed += 1
            self._awaiting_links[key] = page

            await self._request_links(url, depth, config)
            if not self._running:
                return CrawlState.STOPPED

            if config.delay > 0:
                await asyncio.sleep(config.delay)

    async def _extract_page(self, url: str, config: CrawlConfig) -> ExtractionResult:
        try:
            return await self.engine.extract(config.page_options.to_target(url))
        except Exception as exc:  # noqa: BLE001
            print(f"[Crawler] extraction raised for {url}: {exc!r}")
            self.events.publish(ErrorEvent(f"Extraction failed for {url}: {exc}"))
            return _failed_extraction("Crawler", str(exc), type(exc).__name__)

    async def _request_links(self, url: str, depth: int, config: CrawlConfig) -> None:
        if self.renderer is None:
            raise RenderingUnavailable("crawling requires a rendering capability")
        try:
            if normalize_url(self.renderer.current_url or "") != normalize_url(url):
                await self.renderer.navigate(url, timeout=self.render_timeout)
            message = await self.renderer.evaluate_and_await(
                link_extraction_script(depth), self.render_timeout
            )
        except Exception as exc:  # noqa: BLE001
            print(f"[Crawler] link extraction failed for {url}: {exc}")
            self.events.publish(ErrorEvent(f"Link extraction failed for {url}: {exc}"))
            self._awaiting_links.pop(normalize_url(url), None)
            return

        if self._finalized:
            return
        self._on_links_extracted(message, url, config)

    def _on_links_extracted(self, message: RenderMessage, requested_url: str, config: CrawlConfig) -> None:
        """Attach links to the page they came from and enqueue the crawlable ones.

        The reply is matched by the page's current URL, falling back to the URL
        that was requested when the page redirected.
        """
        if message.type != CRAWLER_LINKS_EXTRACTED:
            print(f"[Crawler] ignoring {message.type} while waiting for links of {requested_url}")
            self._awaiting_links.pop(normalize_url(requested_url), None)
            return

        current_url = message.payload.get("currentUrl") or requested_url
        page = self._awaiting_links.pop(normalize_url(current_url), None)
        if page is None:
            page = self._awaiting_links.pop(normalize_url(requested_url), None)
        if page is None:
            print(f"[Crawler] no page awaiting links for {current_url}; dropping message.")
            return

        links = filter_links(
            message.payload.get("links") or [],
            current_url,
            follow_external=config.follow_external_links,
            include_patterns=config.url_include_patterns,
            exclude_patterns=config.url_exclude_patterns,
        )
        page.outbound_links = links

        depth = int(message.payload.get("depth", page.depth))
        enqueued = 0
        for link in links:
            if normalize_url(link) not in self._visited:
                self._queue.append((link, depth + 1))
                enqueued += 1
        print(f"[Crawler] {page.url}: {len(links)} link(s), {enqueued} enqueued.")

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def _finalize(self, state: CrawlState) -> None:
        if self._finalized or self._result is None:
            return
        self._finalized = True
        self._running = False
        result = self._result

        if self._in_flight is not None:
            url, depth = self._in_flight
            self._in_flight = None
            result.pages.append(
                CrawlPageResult(
                    url=url,
                    depth=depth,
                    extraction=_failed_extraction(
                        "Crawler", "crawl stopped before the page finished", "Cancelled"
                    ),
                )
            )
            result.pages_failed += 1

        result.end_time = time.time()
        result.elapsed_ms = round((result.end_time - result.start_time) * 1000, 1)
        result.state = state
        print(
            f"[Crawler] {state.value}: visited={result.pages_visited} "
            f"ok={result.pages_succeeded} failed={result.pages_failed} "
            f"in {result.elapsed_ms:.0f}ms"
        )
        self.events.publish(CompletionEvent(result))

    @staticmethod
    def _adapter(
        on_progress: Optional[Callable[[ProgressEvent], Any]],
        on_complete: Optional[Callable[[CrawlRunResult], Any]],
        on_error: Optional[Callable[[str], Any]],
    ) -> Callable[[Any], None]:
        """Route bus events to the per-run callbacks passed to :meth:`start`."""

        def _dispatch(event: Any) -> None:
            if isinstance(event, ProgressEvent) and on_progress is not None:
                on_progress(event)
            elif isinstance(event, CompletionEvent) and on_complete is not None:
                on_complete(event.result)
            elif isinstance(event, ErrorEvent) and on_error is not None:
                on_error(event.message)

        return _dispatch
