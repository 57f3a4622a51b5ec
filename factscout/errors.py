"""Error taxonomy shared by the extraction engine, crawler and inference client.

Inside the extraction fallback chain every error is caught and recorded as an
attempt; only caller misuse (``NoTargetsConfigured``, ``AlreadyRunning``,
``RenderingUnavailable``) escapes to the caller.
"""

from __future__ import annotations

import json
from urllib.parse import urlparse

import httpx

# Hosts that refuse browser-originated requests regardless of headers.
KNOWN_BLOCKED_HOSTS = frozenset(
    {
        "api.binance.com",
        "www.binance.com",
        "finance.yahoo.com",
        "www.google.com",
    }
)

_BLOCKED_SIGNATURES = (
    "cors",
    "access-control-allow-origin",
    "x-frame-options",
    "frame-ancestors",
    "refused to display",
    "refused to frame",
    "net::err_blocked_by_response",
    "net::err_blocked_by_client",
)


class FactScoutError(Exception):
    """Base class for every error raised by this package."""


class NetworkError(FactScoutError):
    """Connection, DNS or timeout failure reaching a remote endpoint."""


class BlockedByOrigin(FactScoutError):
    """The origin refused machine access (CORS / X-Frame-Options)."""


class ParseError(FactScoutError):
    """A body was malformed JSON or had an unexpected shape."""


class RateLimited(FactScoutError):
    """The inference API rejected a call for quota reasons."""


class NoRelevantTarget(FactScoutError):
    """The query matched no configured target and triage did not answer it."""


class NoTargetsConfigured(FactScoutError):
    """``extract`` was called with a query but the engine has no targets."""


class AlreadyRunning(FactScoutError):
    """A crawl was started on a crawler that already has an active run."""


class RenderingUnavailable(FactScoutError):
    """An operation needs a rendering capability and none was supplied."""


class RenderingError(FactScoutError):
    """A navigate / evaluate round trip failed or returned a mismatched reply."""


# ---------------------------------------------------------------------------
# Inference errors
# ---------------------------------------------------------------------------

class InferenceError(FactScoutError):
    """Base class for typed failures returned by the inference client."""


class InferenceTimeout(InferenceError):
    """The inference call did not finish within its timeout."""


class InferenceHttpError(InferenceError):
    def __init__(self, status: int, message: str = "") -> None:
        self.status = status
        super().__init__(f"HTTP {status}: {message}" if message else f"HTTP {status}")


class InferenceApiError(InferenceError):
    """The API answered but reported an error or an unusable body."""


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def is_blocked_host(url: str) -> bool:
    """Return ``True`` if *url* points at a host known to block machine access."""
    host = (urlparse(url).hostname or "").lower()
    return host in KNOWN_BLOCKED_HOSTS


def looks_blocked(text: str) -> bool:
    lowered = text.lower()
    return any(sig in lowered for sig in _BLOCKED_SIGNATURES)


def classify_error(exc: BaseException, url: str = "") -> FactScoutError:
    """Map an arbitrary exception raised while reading *url* onto the taxonomy."""
    if isinstance(exc, FactScoutError) and not isinstance(exc, RenderingError):
        return exc

    message = str(exc) or exc.__class__.__name__
    if looks_blocked(message) or (url and is_blocked_host(url)):
        return BlockedByOrigin(message)
    if isinstance(exc, (httpx.TransportError, TimeoutError, ConnectionError)):
        return NetworkError(message)
    if isinstance(exc, (json.JSONDecodeError, KeyError, IndexError, TypeError)):
        return ParseError(message)
    if isinstance(exc, RenderingError):
        return exc
    return NetworkError(message)
