"""Tests for the Playwright rendering capability.

Playwright itself is *not* exercised (it needs a browser install); the page
object is replaced with a ``MagicMock`` whose ``evaluate`` / ``goto`` are
``AsyncMock`` instances, which covers reply correlation and error wrapping.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from factscout.errors import RenderingError
from factscout.rendering.base import CRAWLER_LINKS_EXTRACTED, DOM_TEXT_CONTENT, EXTRACTION_ERROR
from factscout.rendering.playwright_renderer import PlaywrightRenderer, _to_message
from factscout.rendering.scripts import link_extraction_script, selector_extraction_script, visible_text_script


def _renderer_with_page(evaluate=None, goto=None, url: str = "https://example.com/") -> PlaywrightRenderer:
    page = MagicMock()
    page.url = url
    page.evaluate = evaluate or AsyncMock()
    page.goto = goto or AsyncMock()
    renderer = PlaywrightRenderer(headless=True)
    renderer._page = page
    return renderer


def _echo(kind: str, **payload):
    """``page.evaluate`` stand-in that echoes the request id back."""

    async def _evaluate(source, args):
        return {"type": kind, "requestId": args["requestId"], **payload}

    return AsyncMock(side_effect=_evaluate)


class TestToMessage:
    def test_matching_reply_is_accepted(self) -> None:
        message = _to_message(
            {"type": DOM_TEXT_CONTENT, "requestId": "r1", "data": "hello"}, "r1", DOM_TEXT_CONTENT
        )
        assert message.type == DOM_TEXT_CONTENT
        assert message.data == "hello"
        assert "requestId" not in message.payload

    def test_mismatched_request_id_is_rejected(self) -> None:
        with pytest.raises(RenderingError, match="correlation mismatch"):
            _to_message({"type": DOM_TEXT_CONTENT, "requestId": "other"}, "r1", DOM_TEXT_CONTENT)

    def test_unexpected_type_is_rejected(self) -> None:
        with pytest.raises(RenderingError, match="unexpected reply type"):
            _to_message({"type": DOM_TEXT_CONTENT, "requestId": "r1"}, "r1", CRAWLER_LINKS_EXTRACTED)

    def test_error_reply_is_allowed_for_any_request(self) -> None:
        message = _to_message(
            {"type": EXTRACTION_ERROR, "requestId": "r1", "error": "bad selector"}, "r1", DOM_TEXT_CONTENT
        )
        assert message.is_error
        assert message.error == "bad selector"

    def test_non_object_reply_is_rejected(self) -> None:
        with pytest.raises(RenderingError):
            _to_message("just text", "r1", DOM_TEXT_CONTENT)


class TestPlaywrightRenderer:
    async def test_evaluate_passes_args_and_request_id(self) -> None:
        evaluate = _echo(CRAWLER_LINKS_EXTRACTED, currentUrl="https://example.com/", links=[], depth=2)
        renderer = _renderer_with_page(evaluate=evaluate)

        message = await renderer.evaluate_and_await(link_extraction_script(2), timeout=1.0)

        _source, args = evaluate.await_args.args
        assert args["depth"] == 2
        assert args["requestId"] == message.request_id
        assert message.payload["currentUrl"] == "https://example.com/"

    async def test_selector_script_carries_specs(self) -> None:
        evaluate = _echo("EXTRACTION_RESULT", data={"title": "T"})
        renderer = _renderer_with_page(evaluate=evaluate)
        specs = {"title": {"selector": "title", "attribute": None, "multiple": False}}

        message = await renderer.evaluate_and_await(selector_extraction_script(specs), timeout=1.0)

        assert evaluate.await_args.args[1]["specs"] == specs
        assert message.data == {"title": "T"}

    async def test_script_exception_is_wrapped(self) -> None:
        renderer = _renderer_with_page(evaluate=AsyncMock(side_effect=Exception("Execution context destroyed")))
        with pytest.raises(RenderingError, match="Execution context destroyed"):
            await renderer.evaluate_and_await(visible_text_script(100), timeout=1.0)

    async def test_slow_script_times_out(self) -> None:
        async def _hang(source, args):
            await asyncio.sleep(1)

        renderer = _renderer_with_page(evaluate=AsyncMock(side_effect=_hang))
        with pytest.raises(RenderingError, match="timed out"):
            await renderer.evaluate_and_await(visible_text_script(100), timeout=0.01)

    async def test_evaluate_without_page_fails(self) -> None:
        with pytest.raises(RenderingError):
            await PlaywrightRenderer().evaluate_and_await(visible_text_script(100), timeout=1.0)

    async def test_navigation_failure_is_wrapped(self) -> None:
        goto = AsyncMock(side_effect=Exception("net::ERR_BLOCKED_BY_RESPONSE"))
        renderer = _renderer_with_page(goto=goto)

        with pytest.raises(RenderingError, match="ERR_BLOCKED_BY_RESPONSE"):
            await renderer.navigate("https://blocked.test/", timeout=2)

        assert goto.await_args.kwargs["timeout"] == 2000

    def test_blank_page_has_no_current_url(self) -> None:
        assert _renderer_with_page(url="about:blank").current_url is None
        assert _renderer_with_page(url="https://a.test/").current_url == "https://a.test/"
