"""Locally generated sample payloads for the terminal failure result."""

from __future__ import annotations

from typing import Any

from factscout.domains import CRYPTO, EXCHANGE_RATE, WEATHER, detect_query_type, extract_entities

SAMPLE_USD_MXN_RATE = 17.26
SAMPLE_BITCOIN_PRICE = 68245.32


def placeholder_data(query: str) -> dict[str, Any]:
    """Return a uniformly shaped, clearly marked sample payload for *query*.

    Labels (coin, location) follow the entities named in the query; the
    numbers are fixed samples.
    """
    query_type = detect_query_type(query)
    entities = extract_entities(query)

    if query_type == EXCHANGE_RATE:
        data: dict[str, Any] = {"rate": SAMPLE_USD_MXN_RATE, "base": "USD", "target": "MXN"}
    elif query_type == WEATHER:
        locations = entities["locations"]
        location = locations[0].title() if locations else "Mexico City"
        data = {"temperature": 24, "unit": "C", "condition": "Partly Cloudy", "location": location}
    elif query_type == CRYPTO:
        coins = entities["cryptocurrencies"]
        data = {
            "asset": coins[0] if coins else "bitcoin",
            "price": SAMPLE_BITCOIN_PRICE,
            "currency": "USD",
            "change_24h": 1.2,
        }
    else:
        data = {"message": f"No results available for: {query}"}

    data["sample"] = True
    return data
