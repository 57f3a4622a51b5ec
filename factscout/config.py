"""Centralised settings for the FactScout engine.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

Durations are seconds throughout.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Inference API
    # ------------------------------------------------------------------
    inference_api_url: str = field(
        default_factory=lambda: os.environ.get(
            "INFERENCE_API_URL", "https://openrouter.ai/api/v1/chat/completions"
        )
    )
    inference_model: str = field(
        default_factory=lambda: os.environ.get(
            "INFERENCE_MODEL", "deepseek/deepseek-chat-v3-0324:free"
        )
    )
    inference_api_keys: list[str] = field(
        default_factory=lambda: _env_list("INFERENCE_API_KEYS")
    )
    inference_referer: str = field(
        default_factory=lambda: os.environ.get("INFERENCE_REFERER", "https://factscout.local")
    )
    inference_timeout: float = field(
        default_factory=lambda: float(os.environ.get("INFERENCE_TIMEOUT", "30.0"))
    )
    inference_temperature: float = field(
        default_factory=lambda: float(os.environ.get("INFERENCE_TEMPERATURE", "0.2"))
    )
    inference_max_tokens: int = field(
        default_factory=lambda: int(os.environ.get("INFERENCE_MAX_TOKENS", "1024"))
    )
    rate_limit_threshold: int = field(
        default_factory=lambda: int(os.environ.get("RATE_LIMIT_THRESHOLD", "3"))
    )

    # ------------------------------------------------------------------
    # Extraction engine
    # ------------------------------------------------------------------
    ai_triage_enabled: bool = field(
        default_factory=lambda: _env_bool("AI_TRIAGE_ENABLED", "false")
    )
    api_timeout: float = field(
        default_factory=lambda: float(os.environ.get("API_TIMEOUT", "10.0"))
    )
    render_timeout: float = field(
        default_factory=lambda: float(os.environ.get("RENDER_TIMEOUT", "15.0"))
    )
    dom_settle_delay: float = field(
        default_factory=lambda: float(os.environ.get("DOM_SETTLE_DELAY", "2.0"))
    )
    page_text_limit: int = field(
        default_factory=lambda: int(os.environ.get("PAGE_TEXT_LIMIT", "8000"))
    )
    proxy_url_template: str = field(
        default_factory=lambda: os.environ.get(
            "PROXY_URL_TEMPLATE", "https://api.allorigins.win/raw?url={url}"
        )
    )
    user_agent: str = field(
        default_factory=lambda: os.environ.get(
            "USER_AGENT",
            "Mozilla/5.0 (compatible; FactScout/1.0; +https://github.com/factscout)",
        )
    )

    # ------------------------------------------------------------------
    # Crawler
    # ------------------------------------------------------------------
    crawl_max_pages: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_MAX_PAGES", "50"))
    )
    crawl_depth_limit: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_DEPTH_LIMIT", "2"))
    )
    crawl_delay: float = field(
        default_factory=lambda: float(os.environ.get("CRAWL_DELAY", "1.0"))
    )

    # ------------------------------------------------------------------
    # Rendering (headless browser)
    # ------------------------------------------------------------------
    headless: bool = field(default_factory=lambda: _env_bool("HEADLESS", "true"))


# Module-level singleton, import this everywhere:
#   from factscout.config import settings
settings = Settings()
