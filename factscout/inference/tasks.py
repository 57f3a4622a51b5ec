"""Prompted tasks built on :meth:`InferenceClient.call`.

Each helper owns its prompt and interprets the reply.  Degraded (fallback)
replies come back in the same shape as live ones; callers that care check
``reply.fallback``.
"""

from __future__ import annotations

import json
from typing import Any, Iterable

from factscout.domains import (
    DOMAIN_FIELDS,
    DOMAIN_INSTRUCTIONS,
    QUERY_TYPES,
    detect_query_type,
    detect_query_types,
    extract_entities,
)
from factscout.inference.client import InferenceClient, InferenceReply
from factscout.inference.parsing import ParsedReply, StructuredFields, parse_reply

_FALLBACK_NOTE = (
    "\n\nNote: this plan was generated offline because the inference service "
    "is unavailable; review it before running."
)


def _extraction_prompt(instruction: str, fields: Iterable[str]) -> str:
    return (
        f"You are a data extraction assistant. Your task: {instruction}.\n"
        f"Fields: {', '.join(fields)}\n"
        "Respond only with a JSON object whose keys are exactly those fields. "
        "Use null for any field you cannot determine. Numbers must be plain numbers."
    )


def _entity_line(query: str) -> str:
    """Hint line naming the currencies, coins and places found in *query*, or ``""``."""
    parts = [f"{kind}={', '.join(values)}" for kind, values in extract_entities(query).items() if values]
    return f"\nEntities: {'; '.join(parts)}" if parts else ""


async def triage_query(
    client: InferenceClient,
    query: str,
    timeout: float | None = None,
) -> tuple[ParsedReply, InferenceReply]:
    """Ask the model to answer *query* directly with domain-specific fields."""
    domain = detect_query_type(query)
    fields = DOMAIN_FIELDS[domain]
    messages = [
        {"role": "system", "content": _extraction_prompt(DOMAIN_INSTRUCTIONS[domain], fields)},
        {"role": "user", "content": f"Query: {query}{_entity_line(query)}"},
    ]
    reply = await client.call(messages, timeout=timeout)
    return parse_reply(reply.content, fields, domain), reply


async def analyze_page_text(
    client: InferenceClient,
    text: str,
    fields: Iterable[str],
    query: str = "",
    timeout: float | None = None,
) -> tuple[ParsedReply, InferenceReply]:
    """Extract *fields* from rendered page *text*."""
    fields = tuple(fields)
    domain = detect_query_type(f"{query} {' '.join(fields)}")
    instruction = f"read the page text below and {DOMAIN_INSTRUCTIONS[domain]}"
    messages = [
        {"role": "system", "content": _extraction_prompt(instruction, fields)},
        {"role": "user", "content": f"Query: {query}\n\nPAGE TEXT:\n{text}"},
    ]
    reply = await client.call(messages, timeout=timeout)
    return parse_reply(reply.content, fields, domain), reply


async def classify_query(client: InferenceClient, query: str) -> list[str]:
    """Categorize *query* into one or more of :data:`QUERY_TYPES`."""
    messages = [
        {
            "role": "system",
            "content": (
                "Categorize the user's request. Allowed categories: "
                f"{', '.join(QUERY_TYPES)}. Respond only with a JSON array of categories."
            ),
        },
        {"role": "user", "content": query},
    ]
    reply = await client.call(messages)
    try:
        value = json.loads(reply.content.strip().strip("`").removeprefix("json").strip())
    except ValueError:
        value = None
    if isinstance(value, list):
        categories = [str(v) for v in value if str(v) in QUERY_TYPES]
        if categories:
            return categories
    return detect_query_types(query)


async def plan_extraction(client: InferenceClient, description: str) -> str:
    """Turn a workflow description into a step-by-step extraction script."""
    messages = [
        {
            "role": "system",
            "content": (
                "You design web data extraction workflows. Reply with numbered steps "
                "followed by a JavaScript script that performs the extraction."
            ),
        },
        {"role": "user", "content": description},
    ]
    reply = await client.call(messages)
    return reply.content + _FALLBACK_NOTE if reply.fallback else reply.content


async def validate_result(
    client: InferenceClient,
    query: str,
    data: Any,
) -> tuple[bool, str]:
    """Ask whether *data* plausibly answers *query*; returns ``(valid, explanation)``."""
    messages = [
        {
            "role": "system",
            "content": (
                "You check whether extracted data answers a query. "
                'Respond only with a JSON object: {"valid": true|false, "explanation": "..."}.'
            ),
        },
        {"role": "user", "content": f"Query: {query}\nData: {json.dumps(data, default=str)}"},
    ]
    reply = await client.call(messages)
    parsed = parse_reply(reply.content, ("valid", "explanation"))
    if not reply.fallback and isinstance(parsed, StructuredFields) and "valid" in parsed.fields:
        return bool(parsed.fields["valid"]), str(parsed.fields.get("explanation", ""))
    return bool(data), "Could not verify with the inference service; accepted on shape only."
