"""Shared fixtures: an in-memory rendering capability and an offline inference client.

``FakeRenderer`` serves pages from a dict instead of driving a browser.  A
page's ``fields`` map CSS selector -> value, so the selector script returns
whatever the test put under the selector it was asked for.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import pytest

from factscout.errors import RenderingError
from factscout.inference.client import InferenceClient
from factscout.inference.credentials import CredentialPool
from factscout.rendering.base import (
    CRAWLER_LINKS_EXTRACTED,
    DOM_TEXT_CONTENT,
    EXTRACTION_RESULT,
    RenderingCapability,
    RenderMessage,
    RenderScript,
    new_request_id,
)

INFERENCE_URL = "https://inference.test/v1/chat/completions"


@dataclass
class FakePage:
    fields: dict[str, Any] = field(default_factory=dict)
    text: str = ""
    links: list[str] = field(default_factory=list)
    final_url: Optional[str] = None


class FakeRenderer(RenderingCapability):
    def __init__(
        self,
        pages: Optional[dict[str, FakePage]] = None,
        blocked: tuple[str, ...] = (),
        fail_links: tuple[str, ...] = (),
    ) -> None:
        self.pages = pages or {}
        self.blocked = set(blocked)
        self.fail_links = set(fail_links)
        self.navigations: list[str] = []
        self.evaluations: list[str] = []
        self.on_navigate: Optional[Callable[[str], None]] = None
        self.closed = False
        self._url: Optional[str] = None
        self._page: Optional[FakePage] = None

    @property
    def current_url(self) -> Optional[str]:
        return self._url

    async def navigate(self, url: str, timeout: Optional[float] = None) -> None:
        self.navigations.append(url)
        if self.on_navigate is not None:
            self.on_navigate(url)
        if url in self.blocked:
            raise RenderingError(
                f"Refused to display '{url}' in a frame because it set 'X-Frame-Options' to 'deny'."
            )
        page = self.pages.get(url)
        if page is None:
            raise RenderingError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        self._page = page
        self._url = page.final_url or url

    async def evaluate_and_await(self, script: RenderScript, timeout: float) -> RenderMessage:
        self.evaluations.append(script.kind)
        if self._page is None:
            raise RenderingError("no page loaded")
        page = self._page
        request_id = new_request_id()

        if script.kind == EXTRACTION_RESULT:
            data = {
                name: page.fields.get(spec["selector"])
                for name, spec in script.args["specs"].items()
            }
            return RenderMessage(EXTRACTION_RESULT, request_id, {"data": data})
        if script.kind == DOM_TEXT_CONTENT:
            return RenderMessage(DOM_TEXT_CONTENT, request_id, {"data": page.text})
        if script.kind == CRAWLER_LINKS_EXTRACTED:
            if self._url in self.fail_links:
                raise RenderingError(f"{script.kind} script timed out after {timeout:.1f}s")
            payload = {"currentUrl": self._url, "links": list(page.links), "depth": script.args["depth"]}
            return RenderMessage(CRAWLER_LINKS_EXTRACTED, request_id, payload)
        raise RenderingError(f"unsupported script {script.kind}")

    async def close(self) -> None:
        self.closed = True


def chat_reply(content: str, model: str = "test-model") -> dict[str, Any]:
    """A chat-completion response body carrying *content*."""
    return {"model": model, "choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture()
def offline_inference() -> InferenceClient:
    """Client with no credentials: every call is answered by the local fallback."""
    return InferenceClient(pool=CredentialPool([]), api_url=INFERENCE_URL, model="test-model")


@pytest.fixture()
def live_inference() -> InferenceClient:
    """Client with one credential pointed at the mocked ``INFERENCE_URL``."""
    return InferenceClient(pool=CredentialPool(["key-one"]), api_url=INFERENCE_URL, model="test-model")
