"""Deterministic offline replies used when no live inference call can succeed.

The generator looks only at the system prompt and the last user message,
decides what kind of task was requested and which data domain it concerns,
and returns a canned reply with the same shape a live model would give for
that task.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping, Sequence

from factscout.domains import CRYPTO, EXCHANGE_RATE, GENERAL, WEATHER, detect_query_type, detect_query_types
from factscout.inference.parsing import scan_patterns

CATEGORIZATION = "categorization"
WORKFLOW = "workflow"
EXTRACTION = "extraction"
GENERIC = "generic"

_FIELDS_LINE = re.compile(r"^\s*fields\s*:\s*(.+)$", re.IGNORECASE | re.MULTILINE)

_WORKFLOW_TEMPLATES = {
    CRYPTO: """\
1. Query the CoinGecko simple price API.
2. Fall back to the CoinCap asset endpoint if it fails.
3. Return the USD price and 24h change.

```javascript
const res = await fetch('https://api.coingecko.com/api/v3/simple/price?ids=bitcoin&vs_currencies=usd&include_24hr_change=true');
const body = await res.json();
return { price: body.bitcoin.usd, change_24h: body.bitcoin.usd_24h_change };
```""",
    EXCHANGE_RATE: """\
1. Query open.er-api.com for the latest USD rates.
2. Fall back to exchangerate-api.com if it fails.
3. Return the MXN rate.

```javascript
const res = await fetch('https://open.er-api.com/v6/latest/USD');
const body = await res.json();
return { rate: body.rates.MXN, base: 'USD', target: 'MXN' };
```""",
    WEATHER: """\
1. Query Open-Meteo for current conditions at the requested coordinates.
2. Return temperature and weather code.

```javascript
const res = await fetch('https://api.open-meteo.com/v1/forecast?latitude=19.43&longitude=-99.13&current_weather=true');
const body = await res.json();
return { temperature: body.current_weather.temperature, location: 'Mexico City' };
```""",
    GENERAL: """\
1. Navigate to the target page and wait for it to settle.
2. Query the page title, main headings and meta description.
3. Return them as a JSON object.

```javascript
return {
  title: document.title,
  headings: Array.from(document.querySelectorAll('h1, h2')).map(h => h.textContent.trim()),
  description: document.querySelector('meta[name="description"]')?.content ?? null,
};
```""",
}


def _content(message: Mapping[str, Any]) -> str:
    value = message.get("content", "")
    return value if isinstance(value, str) else json.dumps(value)


def split_messages(messages: Sequence[Mapping[str, Any]]) -> tuple[str, str]:
    """Return ``(system prompt, last user message)`` from a chat transcript."""
    system = "\n".join(_content(m) for m in messages if m.get("role") == "system")
    user = ""
    for message in reversed(messages):
        if message.get("role") == "user":
            user = _content(message)
            break
    return system, user


def classify_task(system: str, user: str) -> str:
    s = system.lower()
    if "categor" in s or "classif" in s:
        return CATEGORIZATION
    if "json object" in s and ("extract" in s or "fields" in s):
        return EXTRACTION
    if any(w in s or w in user.lower() for w in ("workflow", "script", "automat")):
        return WORKFLOW
    return GENERIC


def detect_domain(text: str) -> str:
    """Collapse the full query-type set to the domains that have canned replies."""
    query_type = detect_query_type(text)
    if query_type in (CRYPTO, EXCHANGE_RATE, WEATHER):
        return query_type
    return GENERAL


def _requested_fields(system: str) -> list[str]:
    match = _FIELDS_LINE.search(system)
    if not match:
        return []
    return [f.strip() for f in match.group(1).split(",") if f.strip()]


def generate_emergency_reply(messages: Sequence[Mapping[str, Any]]) -> str:
    """Build the canned reply text for *messages*."""
    system, user = split_messages(messages)
    task = classify_task(system, user)
    domain = detect_domain(user)

    if task == CATEGORIZATION:
        return json.dumps(detect_query_types(user))

    if task == EXTRACTION:
        fields = _requested_fields(system)
        found = scan_patterns(user, fields)
        return json.dumps({name: found.get(name) for name in fields} if fields else found)

    if task == WORKFLOW:
        return _WORKFLOW_TEMPLATES[domain]

    return (
        "The inference service is temporarily unavailable because of usage limits "
        "(RATE_LIMIT_EXCEEDED). This reply was generated locally; retry later or "
        "add another API key."
    )
