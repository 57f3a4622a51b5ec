"""Extraction engine: turns a query or a target into one structured result.

Fallback chain (first success wins)
-----------------------------------
0. Inference triage    optional; ask the model to answer the query outright.
1. Target selection    keep the configured targets relevant to the query.
2. Per target, in order:
     api     GET each ``fallback_api_urls`` entry
     dom     navigate, settle, evaluate the selector script
     ai      visible page text -> inference client -> parsed fields
     proxy   relayed fetch of the page, static selectors (then inference)
3. Nothing worked      ``success=False`` with clearly tagged sample data.

Every failure inside the chain is caught, recorded as a
:class:`MethodAttempt`, and the next method is tried.  Only calling
``extract`` with a query on an engine that has no targets at all raises.
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

from factscout.config import settings
from factscout.domains import DOMAIN_FIELDS, detect_query_type
from factscout.errors import (
    BlockedByOrigin,
    FactScoutError,
    NoRelevantTarget,
    NoTargetsConfigured,
    ParseError,
    RenderingError,
    RenderingUnavailable,
    classify_error,
)
from factscout.events import EventBus
from factscout.extraction.api_source import fetch_json
from factscout.extraction.models import (
    PLACEHOLDER_SOURCE,
    TRIAGE_SOURCE,
    ExtractionResult,
    ExtractionTarget,
    MethodAttempt,
)
from factscout.extraction.placeholder import placeholder_data
from factscout.extraction.proxy import extract_with_selectors, fetch_via_proxy, page_text
from factscout.extraction.targets import DEFAULT_TARGETS, parse_number, select_relevant_targets
from factscout.inference.client import InferenceClient, get_inference_client
from factscout.inference.parsing import StructuredFields, Synthesized
from factscout.inference.tasks import analyze_page_text, triage_query
from factscout.progress import StepTracker
from factscout.rendering.base import RenderingCapability
from factscout.rendering.scripts import selector_extraction_script, visible_text_script

_METHOD_LABELS = {
    "api": "Direct API",
    "dom": "DOM extraction",
    "ai": "AI page analysis",
    "proxy": "Proxy relay",
}


@dataclass
class _Outcome:
    data: Any
    source: str
    degraded: bool = False


@dataclass
class _Run:
    """Bookkeeping for one ``extract`` call."""

    query: str
    tracker: StepTracker
    started: float = field(default_factory=time.monotonic)
    attempts: list[MethodAttempt] = field(default_factory=list)

    def record(self, method: str, target: str, exc: BaseException) -> FactScoutError:
        error = classify_error(exc, target)
        self.attempts.append(
            MethodAttempt(method=method, target=target, detail=str(error), error_type=type(error).__name__)
        )
        return error


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")[:40] or "target"


def _safe_transform(name: str, transform: Any, value: Any) -> Any:
    try:
        return transform(value)
    except Exception as exc:  # noqa: BLE001
        print(f"[Extractor] transform for {name!r} failed: {exc!r}")
        return None


def _has_required_value(target: ExtractionTarget, data: Any) -> bool:
    """True when at least one required field resolved to a non-null value."""
    if not isinstance(data, dict):
        return False
    required = [name for name, spec in target.field_selectors.items() if spec.required]
    if not required:
        required = list(target.field_selectors) or list(data)
    return any(data.get(name) is not None for name in required)


def _apply_field_transforms(target: ExtractionTarget, raw: dict[str, Any]) -> dict[str, Any]:
    data = dict(raw)
    for name, transform in target.field_transforms.items():
        data[name] = _safe_transform(name, transform, raw.get(name))
    return data


class ExtractionEngine:
    """Runs the ordered fallback chain for queries and explicit targets."""

    def __init__(
        self,
        targets: Optional[Iterable[ExtractionTarget]] = None,
        renderer: Optional[RenderingCapability] = None,
        inference: Optional[InferenceClient] = None,
        events: Optional[EventBus] = None,
        ai_triage: Optional[bool] = None,
        settle_delay: Optional[float] = None,
        api_timeout: Optional[float] = None,
        render_timeout: Optional[float] = None,
        text_limit: Optional[int] = None,
    ) -> None:
        self.targets: tuple[ExtractionTarget, ...] = (
            tuple(targets) if targets is not None else DEFAULT_TARGETS
        )
        self.renderer = renderer
        self.inference = inference if inference is not None else get_inference_client()
        self.events = events
        self.ai_triage = settings.ai_triage_enabled if ai_triage is None else ai_triage
        self.settle_delay = settings.dom_settle_delay if settle_delay is None else settle_delay
        self.api_timeout = settings.api_timeout if api_timeout is None else api_timeout
        self.render_timeout = settings.render_timeout if render_timeout is None else render_timeout
        self.text_limit = settings.page_text_limit if text_limit is None else text_limit

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def extract(self, query_or_target: Union[str, ExtractionTarget]) -> ExtractionResult:
        """Produce an :class:`ExtractionResult`; never raises for extraction failures.

        Raises:
            NoTargetsConfigured: *query_or_target* is a query and the engine
                was built with an empty target list.
        """
        explicit = isinstance(query_or_target, ExtractionTarget)
        query = query_or_target.display_name if explicit else str(query_or_target).strip()
        if not explicit and not self.targets:
            raise NoTargetsConfigured("extract() needs at least one configured target")

        steps = [("init", "Initializing")]
        if self.ai_triage and not explicit and query:
            steps.append(("triage", "AI triage"))
        run = _Run(query=query, tracker=StepTracker(steps, events=self.events))

        run.tracker.start("init")
        run.tracker.complete("init")

        if run.tracker.get("triage") is not None:
            result = await self._triage(run)
            if result is not None:
                return result

        if explicit:
            relevant = [query_or_target]
        else:
            relevant = select_relevant_targets(query, self.targets)
        # Declared only now: a triage answer ends the run without selecting targets.
        run.tracker.declare("target-selection", "Selecting targets")
        run.tracker.start("target-selection")
        if not relevant:
            run.tracker.fail("target-selection", "no configured target matches the query")
            run.record("select", query, NoRelevantTarget(f"no configured target matches {query!r}"))
            return self._placeholder(run)
        run.tracker.complete(
            "target-selection", ", ".join(t.display_name for t in relevant)
        )

        for target in relevant:
            outcome, method = await self._extract_target(target, run)
            if outcome is not None:
                return self._finish(run, outcome, method)

        return self._placeholder(run)

    async def consensus(self, target: ExtractionTarget, field_name: str) -> ExtractionResult:
        """Average *field_name* across every fallback API of *target*.

        Endpoints are queried one after another.  Falls back to sample data
        when none of them yields a number.
        """
        run = _Run(query=target.display_name, tracker=StepTracker([], events=self.events))
        transform = target.field_transforms.get(field_name)
        samples: list[dict[str, Any]] = []

        for url in target.fallback_api_urls:
            try:
                body = await fetch_json(url, self.api_timeout)
            except FactScoutError as exc:
                print(f"[Consensus] {url} failed: {exc}")
                run.record("consensus", url, exc)
                continue
            raw = body.get(field_name) if isinstance(body, dict) else None
            value = _safe_transform(field_name, transform, body) if transform else raw
            number = parse_number(value)
            if number is None:
                run.record("consensus", url, ParseError(f"{url}: no numeric {field_name!r}"))
                continue
            samples.append({"source": url, "value": number})

        if not samples:
            return self._placeholder(run)

        average = round(sum(s["value"] for s in samples) / len(samples), 6)
        print(f"[Consensus] {field_name}={average} from {len(samples)} source(s).")
        outcome = _Outcome(
            data={field_name: average, "samples": samples},
            source=f"Consensus:{len(samples)} sources",
        )
        return self._finish(run, outcome, "consensus", track=False)

    # ------------------------------------------------------------------
    # Chain steps
    # ------------------------------------------------------------------

    async def _triage(self, run: _Run) -> Optional[ExtractionResult]:
        try:
            parsed, reply = await triage_query(self.inference, run.query)
        except Exception as exc:  # noqa: BLE001
            error = run.record("triage", run.query, exc)
            run.tracker.fail("triage", str(error))
            return None

        if reply.fallback:
            run.record("triage", run.query, ParseError("inference unavailable; fallback reply ignored"))
            run.tracker.fail("triage", "inference unavailable")
            return None
        if isinstance(parsed, StructuredFields) and parsed.fields:
            run.tracker.complete("triage", f"answered by {reply.model}")
            return self._finish(run, _Outcome(parsed.fields, TRIAGE_SOURCE), "triage")

        run.record("triage", run.query, ParseError(f"triage reply was {type(parsed).__name__}"))
        run.tracker.fail("triage", "no structured answer")
        return None

    def _plan(self, target: ExtractionTarget) -> list[str]:
        methods = []
        if target.fallback_api_urls:
            methods.append("api")
        if self.renderer is not None:
            if target.field_selectors:
                methods.append("dom")
            if target.use_ai_analysis and target.field_names:
                methods.append("ai")
        if target.use_proxy:
            methods.append("proxy")
        return methods

    async def _extract_target(
        self,
        target: ExtractionTarget,
        run: _Run,
    ) -> tuple[Optional[_Outcome], str]:
        methods = self._plan(target)
        if self.renderer is None and target.field_selectors:
            run.attempts.append(
                MethodAttempt("dom", target.url, "no rendering capability available", "RenderingUnavailable")
            )

        origin_blocked = False
        for method in methods:
            step_id = f"{_slug(target.display_name)}:{method}"
            run.tracker.declare(step_id, f"{_METHOD_LABELS[method]}: {target.display_name}")

            if method == "ai" and origin_blocked:
                run.tracker.fail(step_id, "skipped: origin blocks rendering")
                continue

            run.tracker.start(step_id)
            try:
                outcome = await self._run_method(method, target, run)
            except Exception as exc:  # noqa: BLE001
                error = run.record(method, target.url, exc)
                origin_blocked = origin_blocked or isinstance(error, BlockedByOrigin)
                print(f"[Extractor] {method} failed for {target.display_name}: {error}")
                run.tracker.fail(step_id, str(error))
                continue

            run.tracker.complete(step_id, outcome.source)
            return outcome, method

        return None, ""

    async def _run_method(self, method: str, target: ExtractionTarget, run: _Run) -> _Outcome:
        if method == "api":
            return await self._via_api(target)
        if method == "dom":
            return await self._via_dom(target)
        if method == "ai":
            return await self._via_ai(target, run.query)
        return await self._via_proxy(target, run.query)

    async def _via_api(self, target: ExtractionTarget) -> _Outcome:
        errors: list[FactScoutError] = []
        for url in target.fallback_api_urls:
            try:
                body = await fetch_json(url, self.api_timeout)
            except FactScoutError as exc:
                print(f"[Extractor] API {url} failed: {exc}")
                errors.append(exc)
                continue

            if not target.field_transforms:
                if body in (None, {}, []):
                    errors.append(ParseError(f"{url}: empty body"))
                    continue
                return _Outcome(body, f"API:{url}")

            data = {
                name: _safe_transform(name, transform, body)
                for name, transform in target.field_transforms.items()
            }
            if _has_required_value(target, data):
                return _Outcome(data, f"API:{url}")
            errors.append(ParseError(f"{url}: response had none of the required fields"))

        last = errors[-1]
        raise type(last)("; ".join(str(e) for e in errors))

    def _page_renderer(self) -> RenderingCapability:
        if self.renderer is None:
            raise RenderingUnavailable("no rendering capability available")
        return self.renderer

    async def _ensure_page(self, renderer: RenderingCapability, url: str) -> None:
        if renderer.current_url != url:
            await renderer.navigate(url, timeout=self.render_timeout)
            if self.settle_delay > 0:
                await asyncio.sleep(self.settle_delay)

    async def _via_dom(self, target: ExtractionTarget) -> _Outcome:
        renderer = self._page_renderer()
        await renderer.navigate(target.url, timeout=self.render_timeout)
        if self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)

        specs = {name: spec.to_script_arg() for name, spec in target.field_selectors.items()}
        message = await renderer.evaluate_and_await(
            selector_extraction_script(specs), self.render_timeout
        )
        if message.is_error:
            raise RenderingError(message.error or "selector script failed")

        raw = message.data if isinstance(message.data, dict) else {}
        data = _apply_field_transforms(target, raw)
        if not _has_required_value(target, data):
            raise ParseError("no required field matched its selector")
        return _Outcome(data, f"DOM:{target.url}")

    async def _analyze_text(self, target: ExtractionTarget, text: str, query: str) -> Optional[_Outcome]:
        fields = target.field_names or DOMAIN_FIELDS[detect_query_type(query)]
        parsed, reply = await analyze_page_text(self.inference, text, fields, query)
        if isinstance(parsed, StructuredFields):
            data = _apply_field_transforms(target, parsed.fields)
            if _has_required_value(target, data):
                return _Outcome(data, f"AI:{reply.model}", degraded=reply.fallback)
            return None
        if isinstance(parsed, Synthesized):
            raise ParseError("inference answered in prose without the requested fields")
        raise ParseError("inference reply could not be parsed")

    async def _via_ai(self, target: ExtractionTarget, query: str) -> _Outcome:
        renderer = self._page_renderer()
        await self._ensure_page(renderer, target.url)
        message = await renderer.evaluate_and_await(
            visible_text_script(self.text_limit), self.render_timeout
        )
        text = message.data if isinstance(message.data, str) else ""
        if message.is_error or not text.strip():
            raise ParseError("page has no readable text")

        outcome = await self._analyze_text(target, text, query)
        if outcome is None:
            raise ParseError("inference found none of the required fields")
        return outcome

    async def _via_proxy(self, target: ExtractionTarget, query: str) -> _Outcome:
        html = await fetch_via_proxy(target.url, self.api_timeout)
        source = f"Proxy:{target.url}"

        if target.field_selectors:
            data = _apply_field_transforms(target, extract_with_selectors(html, target.field_selectors))
            if _has_required_value(target, data):
                return _Outcome(data, source)

        if target.use_ai_analysis and target.field_names:
            text = page_text(html, target.url, self.text_limit)
            if text:
                outcome = await self._analyze_text(target, text, query)
                if outcome is not None:
                    return _Outcome(outcome.data, source, degraded=outcome.degraded)
        raise ParseError("proxied page yielded none of the required fields")

    # ------------------------------------------------------------------
    # Result construction
    # ------------------------------------------------------------------

    def _finish(self, run: _Run, outcome: _Outcome, method: str, track: bool = True) -> ExtractionResult:
        if track:
            run.tracker.declare("done", "Done")
            run.tracker.start("done")
            run.tracker.complete("done", outcome.source)
        result = ExtractionResult(
            success=True,
            data=outcome.data,
            source=outcome.source,
            timestamp=time.time(),
            elapsed_ms=round((time.monotonic() - run.started) * 1000, 1),
            method=method,
            degraded=outcome.degraded,
            attempts=tuple(run.attempts),
        )
        tag = " (degraded)" if outcome.degraded else ""
        print(f"[Extractor] ✓ {run.query!r} via {outcome.source}{tag} in {result.elapsed_ms:.0f}ms")
        return result

    def _placeholder(self, run: _Run) -> ExtractionResult:
        run.tracker.declare("done", "Done")
        run.tracker.start("done")
        run.tracker.fail("done", "all sources failed")

        last = run.attempts[-1] if run.attempts else None
        summary = "; ".join(f"{a.method}: {a.detail}" for a in run.attempts) or "no method applicable"
        print(f"[Extractor] ✗ {run.query!r}: all sources failed ({len(run.attempts)} attempt(s)).")
        return ExtractionResult(
            success=False,
            data=placeholder_data(run.query),
            source=PLACEHOLDER_SOURCE,
            timestamp=time.time(),
            elapsed_ms=round((time.monotonic() - run.started) * 1000, 1),
            error=f"All extraction methods failed: {summary}",
            error_type=last.error_type if last else NoRelevantTarget.__name__,
            method="placeholder",
            attempts=tuple(run.attempts),
        )
