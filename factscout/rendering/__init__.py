"""Rendering package: page-rendering capability interface and implementations."""

from factscout.rendering.base import (
    CRAWLER_LINKS_EXTRACTED,
    DOM_TEXT_CONTENT,
    EXTRACTION_ERROR,
    EXTRACTION_RESULT,
    RenderingCapability,
    RenderMessage,
    RenderScript,
)
from factscout.rendering.playwright_renderer import PlaywrightRenderer

__all__ = [
    "CRAWLER_LINKS_EXTRACTED",
    "DOM_TEXT_CONTENT",
    "EXTRACTION_ERROR",
    "EXTRACTION_RESULT",
    "RenderingCapability",
    "RenderMessage",
    "RenderScript",
    "PlaywrightRenderer",
]
