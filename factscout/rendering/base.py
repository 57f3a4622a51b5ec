"""Rendering capability interface.

A rendering capability loads a page and runs script inside it.  Every
evaluation carries a fresh correlation id; the reply message must echo it
back, so replies can never be matched to the wrong request.

Reply message types
-------------------
``EXTRACTION_RESULT``        {data: {field: value | list | null}}
``EXTRACTION_ERROR``         {error: str}
``CRAWLER_LINKS_EXTRACTED``  {currentUrl: str, links: [str], depth: int}
``DOM_TEXT_CONTENT``         {data: str}
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

EXTRACTION_RESULT = "EXTRACTION_RESULT"
EXTRACTION_ERROR = "EXTRACTION_ERROR"
CRAWLER_LINKS_EXTRACTED = "CRAWLER_LINKS_EXTRACTED"
DOM_TEXT_CONTENT = "DOM_TEXT_CONTENT"

MESSAGE_TYPES = frozenset(
    {EXTRACTION_RESULT, EXTRACTION_ERROR, CRAWLER_LINKS_EXTRACTED, DOM_TEXT_CONTENT}
)


def new_request_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class RenderScript:
    """A script to evaluate in the page plus the reply type it produces."""

    kind: str
    source: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RenderMessage:
    type: str
    request_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def data(self) -> Any:
        return self.payload.get("data")

    @property
    def error(self) -> Optional[str]:
        return self.payload.get("error")

    @property
    def is_error(self) -> bool:
        return self.type == EXTRACTION_ERROR


class RenderingCapability(ABC):
    """Navigate to pages and evaluate scripts in them."""

    @property
    @abstractmethod
    def current_url(self) -> Optional[str]:
        """URL of the page currently loaded, after redirects."""

    @abstractmethod
    async def navigate(self, url: str, timeout: Optional[float] = None) -> None:
        """Load *url*.  Raises :class:`~factscout.errors.RenderingError` on failure."""

    @abstractmethod
    async def evaluate_and_await(self, script: RenderScript, timeout: float) -> RenderMessage:
        """Run *script* in the current page and return its correlated reply.

        Raises :class:`~factscout.errors.RenderingError` on timeout, script
        failure or a reply whose correlation id does not match.
        """

    async def close(self) -> None:
        """Release any browser resources."""

    async def __aenter__(self) -> "RenderingCapability":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
