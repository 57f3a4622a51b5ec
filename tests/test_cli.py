"""Tests for the factscout CLI (extract, consensus, targets, crawl, inference).

``respx`` serves the built-in targets' public APIs; the inference commands get
a client injected through ``cli.commands.inference._client`` so no call ever
leaves the process.  Commands are run with ``--no-render`` where they would
otherwise launch Chromium.
"""

from __future__ import annotations

import httpx
import pytest
import respx
import typer
from typer.testing import CliRunner

from cli.main import _parse_selectors, app
from factscout.extraction.targets import BITCOIN_TARGET
from factscout.inference.client import InferenceClient
from factscout.inference.credentials import CredentialPool

runner = CliRunner()

_COINGECKO, _COINCAP = BITCOIN_TARGET.fallback_api_urls


@pytest.fixture
def offline_client(monkeypatch) -> InferenceClient:
    client = InferenceClient(pool=CredentialPool([]), api_url="https://inference.test/v1/chat")
    monkeypatch.setattr("cli.commands.inference._client", lambda: client)
    return client


# ---------------------------------------------------------------------------
# extract / consensus / targets
# ---------------------------------------------------------------------------

def test_targets_lists_builtin_targets():
    result = runner.invoke(app, ["targets"])
    assert result.exit_code == 0
    assert "Bitcoin price" in result.stdout
    assert "USD/MXN exchange rate" in result.stdout
    assert "Weather in Mexico City" in result.stdout


def test_extract_query_via_public_api():
    with respx.mock:
        respx.get(_COINGECKO).mock(
            return_value=httpx.Response(200, json={"bitcoin": {"usd": 68000, "usd_24h_change": -1.5}})
        )
        result = runner.invoke(app, ["extract", "--query", "bitcoin price", "--no-render", "--no-triage"])

    assert result.exit_code == 0, result.stdout
    assert "API:https://api.coingecko.com" in result.stdout
    assert "68000.0" in result.stdout
    assert "-1.5" in result.stdout


def test_extract_verify_reports_the_model_check(offline_client, monkeypatch):
    monkeypatch.setattr("cli.main.get_inference_client", lambda: offline_client)
    with respx.mock:
        respx.get(_COINGECKO).mock(return_value=httpx.Response(200, json={"bitcoin": {"usd": 68000}}))
        result = runner.invoke(
            app, ["extract", "--query", "bitcoin price", "--no-render", "--no-triage", "--verify"]
        )

    assert result.exit_code == 0, result.stdout
    assert "Verified: ✅" in result.stdout
    assert "Could not verify" in result.stdout


def test_extract_failure_exits_2_with_sample_data():
    with respx.mock:
        respx.get(_COINGECKO).mock(return_value=httpx.Response(500))
        respx.get(_COINCAP).mock(return_value=httpx.Response(500))
        respx.get(host="api.allorigins.win").mock(return_value=httpx.Response(502))
        result = runner.invoke(app, ["extract", "--query", "bitcoin price", "--no-render", "--no-triage"])

    assert result.exit_code == 2
    assert "Sample data (all sources failed)" in result.stdout
    assert "sample" in result.stdout


def test_extract_requires_query_or_url():
    result = runner.invoke(app, ["extract"])
    assert result.exit_code == 1
    assert "Provide --query or --url" in result.stdout


def test_consensus_unknown_target():
    result = runner.invoke(app, ["consensus", "--target", "Gold price"])
    assert result.exit_code == 1
    assert "Unknown target" in result.stdout


def test_crawl_rejects_invalid_config_before_launching_browser():
    result = runner.invoke(app, ["crawl", "--url", "https://site.test/", "--max-pages", "0"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.stdout


def test_parse_selectors_with_attribute():
    specs = _parse_selectors(["price=.price@data-value", "title=h1"])
    assert specs["price"].selector == ".price"
    assert specs["price"].attribute == "data-value"
    assert specs["title"].attribute is None


def test_parse_selectors_rejects_malformed_option():
    with pytest.raises(typer.BadParameter):
        _parse_selectors(["no-equals-sign"])


# ---------------------------------------------------------------------------
# inference
# ---------------------------------------------------------------------------

def test_inference_status(offline_client):
    offline_client.add_credential("sk-test-0123456789abcdef")
    result = runner.invoke(app, ["inference", "status"])

    assert result.exit_code == 0
    assert "Credentials : 1" in result.stdout
    assert "0123456789abcdef" not in result.stdout
    assert "Fallback    : off" in result.stdout


def test_inference_check_without_credentials(offline_client):
    result = runner.invoke(app, ["inference", "check"])
    assert result.exit_code == 1
    assert "No credentials configured" in result.stdout


def test_inference_classify_offline(offline_client):
    result = runner.invoke(app, ["inference", "classify", "--query", "tipo de cambio usd mxn"])
    assert result.exit_code == 0
    assert "exchange_rate" in result.stdout


def test_inference_plan_offline(offline_client):
    result = runner.invoke(app, ["inference", "plan", "--description", "bitcoin price workflow"])
    assert result.exit_code == 0
    assert "coingecko" in result.stdout
    assert "generated offline" in result.stdout


def test_inference_reset(offline_client):
    offline_client.add_credential("sk-test-0123456789abcdef")
    offline_client.pool.record_rate_limit(0)
    assert offline_client.pool.using_fallback_permanently

    result = runner.invoke(app, ["inference", "reset"])

    assert result.exit_code == 0
    assert not offline_client.pool.using_fallback_permanently


def test_inference_add_key_probes_it(offline_client):
    with respx.mock:
        respx.post("https://inference.test/v1/chat").mock(
            return_value=httpx.Response(401, json={"error": {"message": "invalid key"}})
        )
        result = runner.invoke(app, ["inference", "add-key", "--key", "sk-new-0123456789abcdef"])

    assert result.exit_code == 0
    assert "credential rejected" in result.stdout
    assert len(offline_client.pool) == 1


def test_inference_add_key_rejects_duplicate(offline_client):
    offline_client.add_credential("sk-dup-0123456789abcdef")
    result = runner.invoke(app, ["inference", "add-key", "--key", "sk-dup-0123456789abcdef"])
    assert result.exit_code == 1
