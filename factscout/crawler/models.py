"""Data models for crawl runs."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, List, Optional, Tuple

from factscout.config import settings
from factscout.extraction.models import ExtractionResult, PageExtractionOptions


class CrawlState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class CrawlConfig:
    """Crawl run configuration.  ``delay`` is seconds between processed pages."""

    start_url: str
    max_pages: int = field(default_factory=lambda: settings.crawl_max_pages)
    depth_limit: int = field(default_factory=lambda: settings.crawl_depth_limit)
    url_include_patterns: Tuple[str, ...] = ()
    url_exclude_patterns: Tuple[str, ...] = ()
    follow_external_links: bool = False
    delay: float = field(default_factory=lambda: settings.crawl_delay)
    page_options: PageExtractionOptions = field(default_factory=PageExtractionOptions)

    def __post_init__(self) -> None:
        if not self.start_url:
            raise ValueError("start_url is required")
        if self.max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        if self.depth_limit < 0:
            raise ValueError("depth_limit must not be negative")
        if self.delay < 0:
            raise ValueError("delay must not be negative")


@dataclass
class CrawlPageResult:
    """One processed page.  ``outbound_links`` is filled in once links arrive."""

    url: str
    depth: int
    extraction: ExtractionResult
    outbound_links: List[str] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)


@dataclass
class CrawlRunResult:
    start_url: str
    pages_visited: int = 0
    pages_succeeded: int = 0
    pages_failed: int = 0
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    elapsed_ms: Optional[float] = None
    pages: List[CrawlPageResult] = field(default_factory=list)
    state: CrawlState = CrawlState.RUNNING

    @property
    def finalized(self) -> bool:
        return self.end_time is not None

    def snapshot(self) -> "CrawlRunResult":
        """Copy safe to hand to subscribers while the run keeps mutating."""
        return replace(self, pages=[replace(p, outbound_links=list(p.outbound_links)) for p in self.pages])

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["state"] = self.state.value
        return payload
