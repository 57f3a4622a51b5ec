"""Tests for the FastAPI routers: /extract, /crawl (SSE) and /inference.

The app runs through ``TestClient`` with its lifespan; collaborators on
``app.state`` are then swapped for ``FakeRenderer`` and an offline inference
client so nothing launches a browser or reaches the network except through
``respx`` routes.
"""

from __future__ import annotations

import json
from typing import Generator
from unittest.mock import MagicMock

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from conftest import FakePage, FakeRenderer, chat_reply
from factscout.api.app import create_app
from factscout.crawler.crawler import Crawler
from factscout.domains import CRYPTO
from factscout.extraction.engine import ExtractionEngine
from factscout.extraction.models import ExtractionTarget
from factscout.extraction.targets import number_at
from factscout.inference.client import InferenceClient
from factscout.inference.credentials import CredentialPool

_API = "https://api.coins.test/simple"
_SITE = "https://site.test/"

_BTC = ExtractionTarget(
    url="https://coins.test/bitcoin",
    display_name="Bitcoin price",
    fallback_api_urls=(_API,),
    field_transforms={"price": number_at("bitcoin.usd")},
    keywords=("bitcoin",),
    domain=CRYPTO,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_sse(content: bytes) -> list[dict]:
    """Parse raw SSE response bytes into a list of event dicts."""
    events = []
    for line in content.decode().splitlines():
        line = line.strip()
        if line.startswith("data: "):
            events.append(json.loads(line[len("data: "):]))
    return events


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def renderer() -> FakeRenderer:
    return FakeRenderer(
        {
            _SITE: FakePage(fields={"title": "Home"}, links=[f"{_SITE}a", f"{_SITE}b"]),
            f"{_SITE}a": FakePage(fields={"title": "A"}),
            f"{_SITE}b": FakePage(fields={"title": "B"}),
        }
    )


@pytest.fixture()
def client(renderer: FakeRenderer) -> Generator[TestClient, None, None]:
    """TestClient whose app state uses fakes instead of Chromium and the live API."""
    app = create_app()
    inference = InferenceClient(
        pool=CredentialPool(["key-one-0123456789"]), api_url="https://inference.test/v1/chat"
    )
    with TestClient(app, raise_server_exceptions=True) as c:
        c.app.state.inference = inference
        c.app.state.targets = (_BTC,)
        c.app.state.renderer = renderer
        c.app.state.crawler = Crawler(
            renderer,
            engine=ExtractionEngine(targets=(), renderer=renderer, inference=inference, settle_delay=0),
        )
        yield c


# ---------------------------------------------------------------------------
# /extract
# ---------------------------------------------------------------------------

class TestExtract:
    def test_query_uses_configured_targets(self, client: TestClient) -> None:
        with respx.mock:
            respx.get(_API).mock(return_value=httpx.Response(200, json={"bitcoin": {"usd": 68000}}))
            resp = client.post("/extract", json={"query": "bitcoin price", "render": False})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["source"] == f"API:{_API}"
        assert body["data"]["price"] == 68000

    def test_verify_adds_the_model_check(self, client: TestClient) -> None:
        with respx.mock:
            respx.get(_API).mock(return_value=httpx.Response(200, json={"bitcoin": {"usd": 68000}}))
            respx.post("https://inference.test/v1/chat").mock(
                return_value=httpx.Response(200, json=chat_reply('{"valid": true, "explanation": "price found"}'))
            )
            resp = client.post(
                "/extract", json={"query": "bitcoin price", "render": False, "ai_triage": False, "verify": True}
            )

        assert resp.json()["validation"] == {"valid": True, "explanation": "price found"}

    def test_url_with_selectors_renders_the_page(self, client: TestClient, renderer: FakeRenderer) -> None:
        resp = client.post(
            "/extract",
            json={"url": _SITE, "selectors": {"title": {"selector": "title"}}, "use_ai": False},
        )

        body = resp.json()
        assert body["success"] is True
        assert body["data"] == {"title": "Home"}
        assert renderer.navigations == [_SITE]

    def test_failure_is_reported_in_body(self, client: TestClient) -> None:
        resp = client.post("/extract", json={"query": "weather in Lima", "render": False})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is False
        assert body["error_type"] == "NoRelevantTarget"
        assert body["data"]["sample"] is True

    def test_missing_query_and_url_returns_400(self, client: TestClient) -> None:
        assert client.post("/extract", json={}).status_code == 400

    def test_no_targets_returns_400(self, client: TestClient) -> None:
        client.app.state.targets = ()
        resp = client.post("/extract", json={"query": "bitcoin", "render": False})
        assert resp.status_code == 400

    def test_targets_listing(self, client: TestClient) -> None:
        resp = client.get("/extract/targets")
        assert resp.status_code == 200
        assert resp.json()[0]["display_name"] == "Bitcoin price"

    def test_consensus_unknown_target_returns_404(self, client: TestClient) -> None:
        resp = client.post("/extract/consensus", json={"target": "nope", "field": "price"})
        assert resp.status_code == 404

    def test_consensus_known_target(self, client: TestClient) -> None:
        with respx.mock:
            respx.get(_API).mock(return_value=httpx.Response(200, json={"bitcoin": {"usd": 100}}))
            resp = client.post("/extract/consensus", json={"target": "bitcoin price", "field": "price"})

        assert resp.json()["source"] == "Consensus:1 sources"


# ---------------------------------------------------------------------------
# /crawl
# ---------------------------------------------------------------------------

class TestCrawl:
    def test_crawl_streams_progress_and_done(self, client: TestClient) -> None:
        resp = client.post(
            "/crawl", json={"start_url": _SITE, "max_pages": 5, "delay": 0, "use_ai": False}
        )

        assert resp.status_code == 200
        assert "text/event-stream" in resp.headers["content-type"]

        events = _parse_sse(resp.content)
        kinds = [e["event"] for e in events]
        assert kinds.count("progress") == 3
        assert kinds.count("done") == 1
        done = events[-1]
        assert done["event"] == "done"
        assert done["result"]["pages_visited"] == 3
        assert done["result"]["state"] == "completed"

    def test_default_crawler_streams_step_events(self, client: TestClient, monkeypatch) -> None:
        from factscout.config import settings

        monkeypatch.setattr(settings, "dom_settle_delay", 0)
        client.app.state.crawler = None
        resp = client.post("/crawl", json={"start_url": _SITE, "max_pages": 1, "delay": 0, "use_ai": False})

        kinds = [e["event"] for e in _parse_sse(resp.content)]
        assert "step" in kinds
        assert kinds[-1] == "done"

    def test_status_after_run(self, client: TestClient) -> None:
        client.post("/crawl", json={"start_url": _SITE, "max_pages": 1, "delay": 0, "use_ai": False})
        body = client.get("/crawl/status").json()

        assert body["active"] is False
        assert body["result"]["pages_visited"] == 1

    def test_invalid_config_returns_400(self, client: TestClient) -> None:
        resp = client.post("/crawl", json={"start_url": _SITE, "max_pages": 0})
        assert resp.status_code == 400

    def test_busy_crawler_returns_409(self, client: TestClient) -> None:
        client.app.state.crawler = MagicMock(is_active=MagicMock(return_value=True))
        resp = client.post("/crawl", json={"start_url": _SITE})
        assert resp.status_code == 409

    def test_stop_without_active_run(self, client: TestClient) -> None:
        assert client.post("/crawl/stop").json() == {"stopped": False}


# ---------------------------------------------------------------------------
# /inference
# ---------------------------------------------------------------------------

class TestInference:
    def test_status_masks_credentials(self, client: TestClient) -> None:
        body = client.get("/inference/status").json()

        assert body["credential_count"] == 1
        assert body["using_fallback"] is False
        assert all("0123456789" not in c for c in body["credentials"])

    def test_add_credential_and_reject_duplicate(self, client: TestClient) -> None:
        assert client.post("/inference/credentials", json={"key": "key-two-abcdefghij"}).status_code == 201
        assert client.post("/inference/credentials", json={"key": "key-two-abcdefghij"}).status_code == 409

    def test_reset_clears_permanent_fallback(self, client: TestClient) -> None:
        pool = client.app.state.inference.pool
        pool.record_rate_limit(0)
        assert pool.using_fallback_permanently

        body = client.post("/inference/reset").json()

        assert body["using_fallback"] is False
        assert body["current_index"] == 0

    def test_classify_offline(self, client: TestClient) -> None:
        client.app.state.inference.pool.record_rate_limit(0)
        body = client.post("/inference/classify", json={"query": "bitcoin price"}).json()
        assert body["categories"] == ["crypto"]
