"""Crawler package: bounded breadth-first traversal over rendered pages."""

from factscout.crawler.crawler import Crawler
from factscout.crawler.links import filter_links, normalize_url
from factscout.crawler.models import CrawlConfig, CrawlPageResult, CrawlRunResult, CrawlState

__all__ = [
    "Crawler",
    "filter_links",
    "normalize_url",
    "CrawlConfig",
    "CrawlPageResult",
    "CrawlRunResult",
    "CrawlState",
]
