"""Interpret free-form inference replies as tagged variants.

``parse_reply`` returns exactly one of:

``StructuredFields(fields)``
    A JSON object was found (fenced block, bare body, or the outermost
    ``{...}`` span), or the per-domain regex patterns matched.
``Synthesized(text)``
    Readable prose with nothing structured in it.
``Unparseable(raw)``
    Empty output, or something that looked like JSON but was not.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Union

from factscout.domains import DOMAIN_FIELDS, GENERAL


@dataclass(frozen=True)
class StructuredFields:
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Synthesized:
    text: str


@dataclass(frozen=True)
class Unparseable:
    raw: str


ParsedReply = Union[StructuredFields, Synthesized, Unparseable]

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _to_number(raw: str) -> float:
    return float(raw.replace(",", ""))


# ---------------------------------------------------------------------------
# Per-field regex patterns (currency rate, temperature, price, ...)
# ---------------------------------------------------------------------------

_RATE_PATTERNS = [
    re.compile(r"=\s*(\d{1,3}(?:\.\d{1,6})?)\s*MXN", re.IGNORECASE),
    re.compile(
        r"(?:USD\s*/\s*MXN|USD\s+to\s+MXN|tipo de cambio|exchange rate|rate)\D{0,30}?(\d{1,3}\.\d{2,6})",
        re.IGNORECASE,
    ),
]
_TEMPERATURE_PATTERN = re.compile(r"(-?\d{1,3}(?:\.\d+)?)\s*°\s*([CF])\b", re.IGNORECASE)
_PRICE_PATTERNS = [
    re.compile(r"\$\s?([0-9]{1,3}(?:,[0-9]{3})+(?:\.[0-9]+)?|[0-9]+(?:\.[0-9]+)?)"),
    re.compile(r"([0-9]{1,3}(?:,[0-9]{3})+(?:\.[0-9]+)?|[0-9]+(?:\.[0-9]+)?)\s*USD\b"),
]
_PERCENT_PATTERN = re.compile(r"([+-]?\d+(?:\.\d+)?)\s*%")
_CONDITIONS = (
    "partly cloudy",
    "cloudy",
    "sunny",
    "clear",
    "rain",
    "storm",
    "snow",
    "fog",
    "parcialmente nublado",
    "nublado",
    "soleado",
    "lluvia",
)


def _scan_rate(text: str) -> float | None:
    for pattern in _RATE_PATTERNS:
        match = pattern.search(text)
        if match:
            return _to_number(match.group(1))
    return None


def _scan_temperature(text: str) -> float | None:
    match = _TEMPERATURE_PATTERN.search(text)
    return _to_number(match.group(1)) if match else None


def _scan_price(text: str) -> float | None:
    for pattern in _PRICE_PATTERNS:
        match = pattern.search(text)
        if match:
            return _to_number(match.group(1))
    return None


def _scan_percent(text: str) -> float | None:
    match = _PERCENT_PATTERN.search(text)
    return _to_number(match.group(1)) if match else None


def _scan_condition(text: str) -> str | None:
    lowered = text.lower()
    for condition in _CONDITIONS:
        if condition in lowered:
            return condition.title()
    return None


_FIELD_SCANNERS = {
    "rate": _scan_rate,
    "temperature": _scan_temperature,
    "price": _scan_price,
    "change_24h": _scan_percent,
    "condition": _scan_condition,
}


def scan_patterns(text: str, fields: Iterable[str]) -> dict[str, Any]:
    """Run the known regex scanner for each requested field over *text*."""
    found: dict[str, Any] = {}
    for name in fields:
        scanner = _FIELD_SCANNERS.get(name)
        if scanner is None:
            continue
        value = scanner(text)
        if value is not None:
            found[name] = value
    return found


# ---------------------------------------------------------------------------
# JSON detection
# ---------------------------------------------------------------------------

def _json_candidates(content: str) -> list[str]:
    candidates = [m.group(1).strip() for m in _FENCED_JSON.finditer(content)]
    candidates.append(content.strip())
    start, end = content.find("{"), content.rfind("}")
    if 0 <= start < end:
        candidates.append(content[start:end + 1])
    return candidates


def _load_object(content: str) -> dict[str, Any] | None:
    for candidate in _json_candidates(content):
        try:
            value = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(value, dict):
            return value
    return None


def _select_fields(obj: dict[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    if isinstance(obj.get("data"), dict) and not any(f in obj for f in fields):
        obj = obj["data"]
    if not fields:
        return {k: v for k, v in obj.items() if v is not None}
    return {f: obj[f] for f in fields if obj.get(f) is not None}


def parse_reply(
    content: str,
    fields: Iterable[str] = (),
    domain: str = GENERAL,
) -> ParsedReply:
    """Classify an inference reply body into a :data:`ParsedReply` variant."""
    fields = tuple(fields)
    text = (content or "").strip()
    if not text:
        return Unparseable(raw=content or "")

    obj = _load_object(text)
    if obj is not None:
        selected = _select_fields(obj, fields)
        if selected:
            return StructuredFields(fields=selected)

    scanned = scan_patterns(text, fields or DOMAIN_FIELDS.get(domain, ()))
    if scanned:
        return StructuredFields(fields=scanned)

    if obj is not None or text.startswith(("{", "[")):
        return Unparseable(raw=text)
    return Synthesized(text=text)
