"""Plain-text rendering of extraction and crawl results for the CLI."""

from __future__ import annotations

import json
from typing import Dict, List

from factscout.crawler.models import CrawlPageResult, CrawlRunResult
from factscout.extraction.models import ExtractionResult


def _status_icon(ok: bool) -> str:
    return "✅" if ok else "❌"


def render_extraction(result: ExtractionResult, show_attempts: bool = True) -> str:
    """Render an extraction result as indented key/value lines."""
    lines = [
        f"{_status_icon(result.success)} {result.source}  ({result.elapsed_ms:.0f} ms, method={result.method})",
    ]
    if result.degraded:
        lines.append("⚠️  Limited accuracy: produced from an offline fallback reply.")
    if result.error:
        lines.append(f"  Error  : [{result.error_type}] {result.error}")

    if isinstance(result.data, dict):
        for key, value in result.data.items():
            rendered = json.dumps(value, ensure_ascii=False) if not isinstance(value, str) else value
            lines.append(f"  {key:<12}: {rendered}")
    elif result.data is not None:
        lines.append(f"  data: {json.dumps(result.data, ensure_ascii=False, default=str)}")

    if show_attempts and result.attempts:
        lines.append("  Attempts:")
        for attempt in result.attempts:
            lines.append(f"    - {attempt.method:<8} {attempt.error_type or ''}: {attempt.detail}")
    return "\n".join(lines)


def render_crawl_tree(run: CrawlRunResult) -> str:
    """Render the visited pages as a tree rooted at the start URL.

    A page hangs under the first visited page that linked to it.
    """
    if not run.pages:
        return f"(no pages visited from {run.start_url})"

    by_url: Dict[str, CrawlPageResult] = {p.url: p for p in run.pages}
    children: Dict[str, List[str]] = {p.url: [] for p in run.pages}
    placed = {run.pages[0].url}
    for page in run.pages:
        for link in page.outbound_links:
            if link in by_url and link not in placed:
                children[page.url].append(link)
                placed.add(link)

    lines: List[str] = []

    def _render(url: str, prefix: str, is_last: bool, is_root: bool) -> None:
        page = by_url[url]
        label = f"{_status_icon(page.extraction.success)} {url}  (depth {page.depth}, {len(page.outbound_links)} links)"
        if is_root:
            lines.append(label)
            child_prefix = ""
        else:
            connector = "└── " if is_last else "├── "
            lines.append(f"{prefix}{connector}{label}")
            child_prefix = prefix + ("    " if is_last else "│   ")
        kids = children[url]
        for i, child in enumerate(kids):
            _render(child, child_prefix, i == len(kids) - 1, False)

    _render(run.pages[0].url, "", True, True)
    orphans = [p.url for p in run.pages if p.url not in placed]
    for url in orphans:
        _render(url, "", True, True)
    return "\n".join(lines)


def render_crawl_summary(run: CrawlRunResult) -> str:
    return (
        f"--- Crawl {run.state.value} ---\n"
        f"  Start     : {run.start_url}\n"
        f"  Visited   : {run.pages_visited}\n"
        f"  Succeeded : {run.pages_succeeded}\n"
        f"  Failed    : {run.pages_failed}\n"
        f"  Elapsed   : {(run.elapsed_ms or 0) / 1000:.1f}s"
    )
