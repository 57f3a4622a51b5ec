"""Inference client management endpoints.

Routes
------
GET  /inference/status       Rate-limit state and credential pool summary
POST /inference/reset        Clear permanent fallback and restart rotation
POST /inference/credentials  Body: {"key": "..."}   add a credential
POST /inference/classify     Body: {"query": "..."}  categorize a query
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from factscout.api.deps import get_inference
from factscout.inference.tasks import classify_query

router = APIRouter()


class CredentialRequest(BaseModel):
    key: str


class ClassifyRequest(BaseModel):
    query: str


@router.get("/status")
def status(request: Request) -> dict[str, Any]:
    client = get_inference(request)
    return {**client.service_status(), "credentials": client.credentials()}


@router.post("/reset")
def reset(request: Request) -> dict[str, Any]:
    client = get_inference(request)
    client.reset_rate_limit_state()
    return client.service_status()


@router.post("/credentials", status_code=201)
def add_credential(body: CredentialRequest, request: Request) -> dict[str, Any]:
    client = get_inference(request)
    if not client.add_credential(body.key):
        raise HTTPException(status_code=409, detail="Credential is empty or already configured.")
    return {"credentials": client.credentials()}


@router.post("/classify")
async def classify(body: ClassifyRequest, request: Request) -> dict[str, Any]:
    categories = await classify_query(get_inference(request), body.query)
    return {"query": body.query, "categories": categories}
