"""FactScout CLI: entry-point for extraction, crawling and inference tooling.

Usage:
    python cli/main.py --help

Command groups:
    extract     one query or URL through the fallback chain
    consensus   average a field across a target's fallback APIs
    crawl       bounded breadth-first crawl from a start URL
    targets     list the configured targets
    inference   credential status, probing, classification, planning
    serve       run the HTTP API with uvicorn
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from factscout.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import json
from typing import List, Optional

import typer

from cli.commands.inference import inference_app
from cli.rendering import render_crawl_summary, render_crawl_tree, render_extraction
from factscout.config import settings
from factscout.crawler.crawler import Crawler
from factscout.crawler.models import CrawlConfig
from factscout.errors import FactScoutError
from factscout.events import ProgressEvent
from factscout.extraction.engine import ExtractionEngine
from factscout.extraction.models import ExtractionTarget, PageExtractionOptions, SelectorSpec
from factscout.extraction.targets import DEFAULT_TARGETS
from factscout.inference.client import get_inference_client
from factscout.inference.tasks import validate_result
from factscout.rendering.playwright_renderer import PlaywrightRenderer

app = typer.Typer(
    name="factscout",
    help="FactScout: structured facts from live web pages.",
    no_args_is_help=True,
)
app.add_typer(inference_app, name="inference")


def _parse_selectors(raw: List[str]) -> dict[str, SelectorSpec]:
    """Parse ``name=css`` or ``name=css@attr`` options into selector specs."""
    specs: dict[str, SelectorSpec] = {}
    for item in raw:
        name, sep, css = item.partition("=")
        if not sep or not name.strip() or not css.strip():
            raise typer.BadParameter(f"expected name=css, got {item!r}")
        css, _, attribute = css.partition("@")
        specs[name.strip()] = SelectorSpec(css.strip(), attribute=attribute.strip() or None)
    return specs


def _find_target(name: str) -> ExtractionTarget:
    for target in DEFAULT_TARGETS:
        if target.display_name.lower() == name.lower():
            return target
    names = ", ".join(repr(t.display_name) for t in DEFAULT_TARGETS)
    typer.echo(f"Unknown target {name!r}. Known targets: {names}")
    raise typer.Exit(1)


# ---------------------------------------------------------------------------
# extract / consensus
# ---------------------------------------------------------------------------

@app.command("extract")
def extract(
    query: Optional[str] = typer.Option(None, help="Free-text query, e.g. 'bitcoin price'."),
    url: Optional[str] = typer.Option(None, help="Extract from this URL instead of the configured targets."),
    selector: List[str] = typer.Option([], "--selector", "-s", help="Field selector as name=css or name=css@attr."),
    proxy: bool = typer.Option(False, "--proxy", help="Allow the proxy relay for --url targets."),
    ai: bool = typer.Option(True, "--ai/--no-ai", help="Allow inference-assisted page analysis."),
    render: bool = typer.Option(True, "--render/--no-render", help="Use a headless browser for DOM steps."),
    triage: bool = typer.Option(settings.ai_triage_enabled, "--triage/--no-triage", help="Ask the model first."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON."),
    verify: bool = typer.Option(False, "--verify", help="Ask the model whether the answer fits the query."),
) -> None:
    """Run one extraction through the fallback chain."""
    if not query and not url:
        typer.echo("[extract] Provide --query or --url.")
        raise typer.Exit(1)

    if url:
        options = PageExtractionOptions(
            field_selectors=_parse_selectors(selector), use_proxy=proxy, use_ai_analysis=ai
        )
        subject: str | ExtractionTarget = options.to_target(url)
    else:
        subject = query or ""

    async def _run():
        inference = get_inference_client()
        if not render:
            result = await ExtractionEngine(inference=inference, ai_triage=triage).extract(subject)
        else:
            async with PlaywrightRenderer() as renderer:
                engine = ExtractionEngine(renderer=renderer, inference=inference, ai_triage=triage)
                result = await engine.extract(subject)
        verdict = None
        if verify and result.success:
            verdict = await validate_result(inference, query or url or "", result.data)
        return result, verdict

    typer.echo(f"[extract] {query or url!r} …")
    result, verdict = asyncio.run(_run())
    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False, default=str))
    else:
        typer.echo(render_extraction(result))
    if verdict is not None:
        valid, explanation = verdict
        typer.echo(f"[extract] Verified: {'✅' if valid else '❌'} {explanation}")
    if not result.success:
        raise typer.Exit(2)


@app.command("consensus")
def consensus(
    target: str = typer.Option("USD/MXN exchange rate", help="Display name of a configured target."),
    field: str = typer.Option("rate", help="Numeric field to average."),
) -> None:
    """Average a numeric field across every fallback API of a target."""
    chosen = _find_target(target)
    typer.echo(f"[consensus] {chosen.display_name} / {field} across {len(chosen.fallback_api_urls)} API(s) …")
    result = asyncio.run(ExtractionEngine().consensus(chosen, field))
    typer.echo(render_extraction(result))
    if not result.success:
        raise typer.Exit(2)


@app.command("targets")
def targets() -> None:
    """List the configured extraction targets."""
    for target in DEFAULT_TARGETS:
        typer.echo(f"  {target.display_name}  [{target.domain}]")
        typer.echo(f"    Page   : {target.url}")
        typer.echo(f"    Fields : {', '.join(target.field_names)}")
        typer.echo(f"    APIs   : {len(target.fallback_api_urls)}   Proxy: {'yes' if target.use_proxy else 'no'}")


# ---------------------------------------------------------------------------
# crawl
# ---------------------------------------------------------------------------

@app.command("crawl")
def crawl(
    url: str = typer.Option(..., help="Start URL."),
    max_pages: int = typer.Option(settings.crawl_max_pages, help="Maximum pages to visit."),
    depth: int = typer.Option(settings.crawl_depth_limit, help="Maximum link depth from the start URL."),
    include: List[str] = typer.Option([], "--include", help="Only follow links containing this text."),
    exclude: List[str] = typer.Option([], "--exclude", help="Never follow links containing this text."),
    external: bool = typer.Option(False, "--external", help="Follow links to other hosts."),
    delay: float = typer.Option(settings.crawl_delay, help="Seconds to wait between pages."),
    selector: List[str] = typer.Option([], "--selector", "-s", help="Per-page field selector as name=css."),
    ai: bool = typer.Option(True, "--ai/--no-ai", help="Allow inference-assisted page analysis."),
) -> None:
    """Crawl breadth-first from URL, extracting every visited page."""
    try:
        config = CrawlConfig(
            start_url=url,
            max_pages=max_pages,
            depth_limit=depth,
            url_include_patterns=tuple(include),
            url_exclude_patterns=tuple(exclude),
            follow_external_links=external,
            delay=delay,
            page_options=PageExtractionOptions(
                field_selectors=_parse_selectors(selector), use_ai_analysis=ai
            ),
        )
    except ValueError as exc:
        typer.echo(f"[crawl] Invalid configuration: {exc}")
        raise typer.Exit(1)

    def _progress(event: ProgressEvent) -> None:
        typer.echo(f"[crawl] {event.percent:5.1f}%  {event.message}")

    def _error(message: str) -> None:
        typer.echo(f"[crawl] ⚠️  {message}")

    async def _run():
        async with PlaywrightRenderer() as renderer:
            crawler = Crawler(renderer, engine=ExtractionEngine(targets=(), renderer=renderer))
            return await crawler.start(config, on_progress=_progress, on_error=_error)

    try:
        run = asyncio.run(_run())
    except FactScoutError as exc:
        typer.echo(f"[crawl] {exc}")
        raise typer.Exit(1)

    typer.echo("")
    typer.echo(render_crawl_tree(run))
    typer.echo("")
    typer.echo(render_crawl_summary(run))


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------

@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8000, help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes."),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn  # noqa: PLC0415

    typer.echo(f"[serve] http://{host}:{port}")
    uvicorn.run("factscout.api.app:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
