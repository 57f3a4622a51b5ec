"""Inference commands: credential status and probing, query classification, planning."""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from factscout.inference.client import InferenceClient, get_inference_client
from factscout.inference.tasks import classify_query, plan_extraction

inference_app = typer.Typer(help="Inference service tooling.", no_args_is_help=True)


def _client() -> InferenceClient:
    return get_inference_client()


@inference_app.command("status")
def status() -> None:
    """Show the credential pool and rate-limit state."""
    client = _client()
    info = client.service_status()
    typer.echo(f"Model       : {info['model']}")
    typer.echo(f"Endpoint    : {info['api_url']}")
    typer.echo(f"Credentials : {info['credential_count']}  (active #{info['current_index']})")
    for masked in client.credentials():
        typer.echo(f"  - {masked}")
    typer.echo(f"Rate limits : {info['consecutive_rate_limit_hits']}/{info['threshold']} consecutive")
    typer.echo(f"Fallback    : {'ON (offline replies)' if info['using_fallback'] else 'off'}")


@inference_app.command("reset")
def reset() -> None:
    """Leave permanent fallback and restart rotation at the first credential."""
    client = _client()
    client.reset_rate_limit_state()
    info = client.service_status()
    typer.echo(f"[inference reset] Fallback off, active credential #{info['current_index']}.")


@inference_app.command("add-key")
def add_key(
    key: str = typer.Option(..., help="Credential to add to the pool."),
    activate: bool = typer.Option(False, "--activate", help="Make it the active credential."),
) -> None:
    """Add a credential to the pool (for this process) and probe it."""
    client = _client()
    if activate:
        client.set_credential(key)
    elif not client.add_credential(key):
        typer.echo("[inference add-key] Credential is empty or already configured.")
        raise typer.Exit(1)
    ok, message = asyncio.run(client.check_credential(key))
    typer.echo(f"[inference add-key] {'✅' if ok else '❌'} {message}")
    typer.echo(f"[inference add-key] Pool: {', '.join(client.credentials())}")


@inference_app.command("check")
def check(
    key: Optional[str] = typer.Option(None, help="Credential to probe (defaults to the active one)."),
) -> None:
    """Probe a credential with a minimal request."""
    client = _client()
    if key is None:
        current = client.pool.current()
        if current is None:
            typer.echo("[inference check] No credentials configured (set INFERENCE_API_KEYS).")
            raise typer.Exit(1)
        key = current[1]
    ok, message = asyncio.run(client.check_credential(key))
    typer.echo(f"[inference check] {'✅' if ok else '❌'} {message}")
    if not ok:
        raise typer.Exit(1)


@inference_app.command("classify")
def classify(query: str = typer.Option(..., help="Query to categorize.")) -> None:
    """Categorize a query into data domains."""
    categories = asyncio.run(classify_query(_client(), query))
    typer.echo(f"[inference classify] {query!r} → {', '.join(categories)}")


@inference_app.command("plan")
def plan(description: str = typer.Option(..., help="What data to extract and from where.")) -> None:
    """Draft a step-by-step extraction script for a workflow description."""
    typer.echo(asyncio.run(plan_extraction(_client(), description)))
