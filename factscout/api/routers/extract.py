"""Extraction endpoints.

Routes
------
POST /extract            Body: {"query": "..."} or {"url": "...", "selectors": {...}}
                         "verify": true adds a model check of the answer
POST /extract/consensus  Body: {"target": "<display name>", "field": "rate"}
GET  /extract/targets    Configured targets
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from factscout.api.deps import build_engine, get_inference, get_renderer
from factscout.errors import NoTargetsConfigured
from factscout.extraction.models import ExtractionTarget, PageExtractionOptions, SelectorSpec
from factscout.inference.tasks import validate_result

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class SelectorBody(BaseModel):
    selector: str
    attribute: Optional[str] = None
    multiple: bool = False
    required: bool = True


class ExtractRequest(BaseModel):
    query: Optional[str] = None
    url: Optional[str] = None
    selectors: dict[str, SelectorBody] = {}
    fallback_api_urls: list[str] = []
    use_proxy: bool = False
    use_ai: bool = True
    render: bool = True
    ai_triage: Optional[bool] = None
    verify: bool = False


class ConsensusRequest(BaseModel):
    target: str
    field: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _target_from(url: str, body: ExtractRequest) -> ExtractionTarget:
    if not body.selectors and not body.fallback_api_urls:
        base = PageExtractionOptions(use_proxy=body.use_proxy, use_ai_analysis=body.use_ai)
        return base.to_target(url)
    return ExtractionTarget(
        url=url,
        display_name=body.query or url,
        field_selectors={name: SelectorSpec(**spec.model_dump()) for name, spec in body.selectors.items()},
        fallback_api_urls=tuple(body.fallback_api_urls),
        use_proxy=body.use_proxy,
        use_ai_analysis=body.use_ai,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("")
async def extract(body: ExtractRequest, request: Request) -> dict[str, Any]:
    """Run the fallback chain and return the :class:`ExtractionResult` as JSON.

    Extraction failures are reported inside the result (``success=false``),
    not as HTTP errors.
    """
    if not body.query and not body.url:
        raise HTTPException(status_code=400, detail="Provide either 'query' or 'url'.")

    renderer = await get_renderer(request) if body.render else None
    engine = build_engine(request, renderer, ai_triage=body.ai_triage)
    try:
        if body.url:
            result = await engine.extract(_target_from(body.url, body))
        else:
            result = await engine.extract(body.query or "")
    except NoTargetsConfigured as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    payload = result.to_dict()
    if body.verify and result.success:
        valid, explanation = await validate_result(
            get_inference(request), body.query or body.url or "", result.data
        )
        payload["validation"] = {"valid": valid, "explanation": explanation}
    return payload


@router.post("/consensus")
async def consensus(body: ConsensusRequest, request: Request) -> dict[str, Any]:
    """Average one numeric field across every fallback API of a configured target."""
    for target in request.app.state.targets:
        if target.display_name.lower() == body.target.lower():
            engine = build_engine(request, renderer=None)
            result = await engine.consensus(target, body.field)
            return result.to_dict()
    raise HTTPException(status_code=404, detail=f"Unknown target {body.target!r}")


@router.get("/targets")
def list_targets(request: Request) -> list[dict[str, Any]]:
    return [target.summary() for target in request.app.state.targets]
