"""Built-in extraction targets and query-to-target relevance matching.

Default targets cover the three domains with free public JSON APIs
(exchange rate, crypto price, weather).  Each lists its rendered page for
DOM extraction and an ordered set of fallback APIs tried first.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Iterable, Optional

from factscout.domains import CRYPTO, EXCHANGE_RATE, GENERAL, WEATHER, detect_query_type
from factscout.extraction.models import ExtractionTarget, SelectorSpec

_NUMBER = re.compile(r"-?\d[\d,]*(?:\.\d+)?")

# WMO weather interpretation codes used by Open-Meteo.
_WEATHER_CODES = {
    0: "Clear",
    1: "Mainly Clear",
    2: "Partly Cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Fog",
    51: "Drizzle",
    61: "Rain",
    63: "Rain",
    65: "Heavy Rain",
    71: "Snow",
    80: "Rain Showers",
    95: "Thunderstorm",
}


def _dig(body: Any, path: str) -> Any:
    node = body
    for key in path.split("."):
        if isinstance(node, list):
            try:
                node = node[int(key)]
            except (ValueError, IndexError):
                return None
        elif isinstance(node, dict):
            node = node.get(key)
        else:
            return None
        if node is None:
            return None
    return node


def parse_number(value: Any) -> Optional[float]:
    """Coerce ``68000``, ``"68,000.50"`` or ``"$ 17.26 MXN"`` to a float."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER.search(value)
        if match:
            return float(match.group(0).replace(",", ""))
    return None


def number_at(*paths: str) -> Callable[[Any], Optional[float]]:
    """Transform reading the first numeric value found at any of *paths*.

    Strings (selected page text) are parsed directly, so the same transform
    serves both the API body and the DOM value of a field.
    """

    def _transform(value: Any) -> Optional[float]:
        if isinstance(value, dict):
            for path in paths:
                number = parse_number(_dig(value, path))
                if number is not None:
                    return number
            return None
        if isinstance(value, list):
            value = value[0] if value else None
        return parse_number(value)

    return _transform


def _weather_condition(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        code = _dig(value, "current_weather.weathercode")
        return _WEATHER_CODES.get(int(code), "Unknown") if code is not None else None
    return value.strip() if isinstance(value, str) and value.strip() else None


def _constant(value: str) -> Callable[[Any], str]:
    return lambda _raw: value


USD_MXN_TARGET = ExtractionTarget(
    url="https://www.google.com/finance/quote/USD-MXN",
    display_name="USD/MXN exchange rate",
    field_selectors={"rate": SelectorSpec("div.YMlKec.fxKbKc")},
    fallback_api_urls=(
        "https://open.er-api.com/v6/latest/USD",
        "https://api.exchangerate-api.com/v4/latest/USD",
    ),
    field_transforms={
        "rate": number_at("rates.MXN"),
        "base": _constant("USD"),
        "target": _constant("MXN"),
    },
    keywords=("usd", "mxn", "dolar", "dollar", "peso", "exchange rate", "tipo de cambio"),
    domain=EXCHANGE_RATE,
    use_proxy=True,
)

BITCOIN_TARGET = ExtractionTarget(
    url="https://coinmarketcap.com/currencies/bitcoin/",
    display_name="Bitcoin price",
    field_selectors={
        "price": SelectorSpec('[data-test="text-cdp-price-display"]'),
        "change_24h": SelectorSpec('[data-change] p, [data-role="change"]', required=False),
    },
    fallback_api_urls=(
        "https://api.coingecko.com/api/v3/simple/price?ids=bitcoin&vs_currencies=usd&include_24hr_change=true",
        "https://api.coincap.io/v2/assets/bitcoin",
    ),
    field_transforms={
        "price": number_at("bitcoin.usd", "data.priceUsd"),
        "change_24h": number_at("bitcoin.usd_24h_change", "data.changePercent24Hr"),
        "currency": _constant("USD"),
    },
    keywords=("bitcoin", "btc", "crypto", "criptomoneda"),
    domain=CRYPTO,
    use_proxy=True,
)

MEXICO_CITY_WEATHER_TARGET = ExtractionTarget(
    url="https://weather.com/weather/today/l/19.43,-99.13",
    display_name="Weather in Mexico City",
    field_selectors={
        "temperature": SelectorSpec('[data-testid="TemperatureValue"]'),
        "condition": SelectorSpec('[data-testid="wxPhrase"]', required=False),
    },
    fallback_api_urls=(
        "https://api.open-meteo.com/v1/forecast?latitude=19.43&longitude=-99.13&current_weather=true",
    ),
    field_transforms={
        "temperature": number_at("current_weather.temperature"),
        "condition": _weather_condition,
        "location": _constant("Mexico City"),
    },
    keywords=("weather", "clima", "temperature", "temperatura", "mexico city", "cdmx"),
    domain=WEATHER,
)

DEFAULT_TARGETS: tuple[ExtractionTarget, ...] = (
    USD_MXN_TARGET,
    BITCOIN_TARGET,
    MEXICO_CITY_WEATHER_TARGET,
)


def _name_words(target: ExtractionTarget) -> list[str]:
    return [w for w in re.findall(r"[a-z0-9]+", target.display_name.lower()) if len(w) > 3]


def select_relevant_targets(
    query: str,
    targets: Iterable[ExtractionTarget],
) -> list[ExtractionTarget]:
    """Keep the targets whose domain, keywords or display name match *query*.

    An empty query keeps every target.  Order is preserved.
    """
    targets = list(targets)
    q = query.strip().lower()
    if not q:
        return targets

    query_domain = detect_query_type(q)
    relevant: list[ExtractionTarget] = []
    for target in targets:
        if query_domain != GENERAL and target.domain == query_domain:
            relevant.append(target)
        elif any(keyword in q for keyword in target.keywords):
            relevant.append(target)
        elif any(word in q for word in _name_words(target)):
            relevant.append(target)
    return relevant
