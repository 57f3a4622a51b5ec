"""URL normalisation and outbound-link filtering for the crawler."""

from __future__ import annotations

from typing import Iterable, Sequence
from urllib.parse import urldefrag, urlparse, urlunparse


def normalize_url(url: str) -> str:
    """Canonical form used for the visited set.

    Drops the fragment, lower-cases scheme and host, and gives an empty path
    a ``/``.  Query strings and trailing slashes on longer paths are kept.
    """
    url, _fragment = urldefrag(url.strip())
    parts = urlparse(url)
    return urlunparse(
        (
            parts.scheme.lower(),
            parts.netloc.lower(),
            parts.path or "/",
            parts.params,
            parts.query,
            "",
        )
    )


def hostname(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def filter_links(
    links: Iterable[str],
    current_url: str,
    follow_external: bool = False,
    include_patterns: Sequence[str] = (),
    exclude_patterns: Sequence[str] = (),
) -> list[str]:
    """Return the crawlable subset of *links* found on *current_url*, de-duplicated.

    Patterns are plain substring matches against the full link.
    """
    current_host = hostname(current_url)
    kept: list[str] = []
    seen: set[str] = set()
    for link in links:
        if not isinstance(link, str) or urlparse(link).scheme not in ("http", "https"):
            continue
        if not follow_external and hostname(link) != current_host:
            continue
        if any(pattern in link for pattern in exclude_patterns):
            continue
        if include_patterns and not any(pattern in link for pattern in include_patterns):
            continue
        key = normalize_url(link)
        if key not in seen:
            seen.add(key)
            kept.append(link)
    return kept
