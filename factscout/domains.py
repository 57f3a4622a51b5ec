"""Keyword-based query domain detection.

Shared by target relevance filtering, inference triage instructions, the
emergency reply generator and placeholder data.  Matching is plain substring
search over the lower-cased query, English and Spanish terms alike.
"""

from __future__ import annotations

import re

EXCHANGE_RATE = "exchange_rate"
CRYPTO = "crypto"
WEATHER = "weather"
NEWS = "news"
PRODUCT = "product"
GENERAL = "general"

QUERY_TYPES = (EXCHANGE_RATE, CRYPTO, WEATHER, NEWS, PRODUCT, GENERAL)

# Fields a structured answer is expected to carry for each domain.
DOMAIN_FIELDS: dict[str, tuple[str, ...]] = {
    EXCHANGE_RATE: ("rate", "base", "target"),
    CRYPTO: ("price", "currency", "change_24h"),
    WEATHER: ("temperature", "condition", "location"),
    NEWS: ("headline", "summary"),
    PRODUCT: ("title", "price"),
    GENERAL: ("title", "summary"),
}

DOMAIN_INSTRUCTIONS: dict[str, str] = {
    EXCHANGE_RATE: "extract the current exchange rate",
    CRYPTO: "extract the current cryptocurrency price",
    WEATHER: "extract the current weather (temperature and conditions)",
    NEWS: "extract the most relevant headline and a short summary",
    PRODUCT: "extract the product name and its price",
    GENERAL: "extract the facts that answer the query",
}

_CURRENCY_CODES = ("usd", "mxn", "eur", "gbp", "jpy", "cad", "brl", "ars", "cop")
_CRYPTO_NAMES = {
    "bitcoin": "bitcoin",
    "btc": "bitcoin",
    "ethereum": "ethereum",
    "eth": "ethereum",
    "solana": "solana",
    "dogecoin": "dogecoin",
}
_KNOWN_LOCATIONS = (
    "mexico city",
    "ciudad de mexico",
    "cdmx",
    "guadalajara",
    "monterrey",
    "new york",
    "madrid",
    "london",
)


def _has_word(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}\b", text) is not None


def _is_exchange_rate(q: str) -> bool:
    return (
        ("usd" in q and "mxn" in q)
        or "tipo de cambio" in q
        or "exchange rate" in q
        or "dolar" in q
        or "dollar" in q
        or "cambio" in q
    )


def _is_crypto(q: str) -> bool:
    return _has_word(q, "btc") or "bitcoin" in q or "crypto" in q or "criptomoneda" in q or "ethereum" in q


def _is_weather(q: str) -> bool:
    return "clima" in q or "weather" in q or "temperatura" in q or "temperature" in q


def _is_news(q: str) -> bool:
    return "noticia" in q or "news" in q or "headline" in q


def _is_product(q: str) -> bool:
    return any(w in q for w in ("precio", "price", "costo", "cost")) and any(
        w in q for w in ("producto", "product")
    )


# Checked in priority order; the first match is the query's primary domain.
_MATCHERS = (
    (EXCHANGE_RATE, _is_exchange_rate),
    (CRYPTO, _is_crypto),
    (WEATHER, _is_weather),
    (NEWS, _is_news),
    (PRODUCT, _is_product),
)


def detect_query_types(query: str) -> list[str]:
    """Every domain *query* touches, primary first; ``[GENERAL]`` when none does."""
    q = query.lower()
    return [domain for domain, matches in _MATCHERS if matches(q)] or [GENERAL]


def detect_query_type(query: str) -> str:
    """Return the primary domain of *query*, one of :data:`QUERY_TYPES`."""
    return detect_query_types(query)[0]


def extract_entities(query: str) -> dict[str, list[str]]:
    """Pull currency codes, cryptocurrencies and known locations out of *query*."""
    q = query.lower()
    currencies = [code.upper() for code in _CURRENCY_CODES if _has_word(q, code)]
    if not currencies and ("dolar" in q or "dollar" in q):
        currencies.append("USD")
    if "peso" in q and "MXN" not in currencies:
        currencies.append("MXN")

    cryptos: list[str] = []
    for token, name in _CRYPTO_NAMES.items():
        if _has_word(q, token) and name not in cryptos:
            cryptos.append(name)

    locations = [loc for loc in _KNOWN_LOCATIONS if loc in q]
    return {"currencies": currencies, "cryptocurrencies": cryptos, "locations": locations}
