"""Data models for the extraction engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from factscout.domains import GENERAL

FieldTransform = Callable[[Any], Any]

# Provenance tag carried by every terminal failure result.
PLACEHOLDER_SOURCE = "Sample data (all sources failed)"
TRIAGE_SOURCE = "AI analysis"


@dataclass(frozen=True)
class SelectorSpec:
    """One DOM query.  ``attribute=None`` reads the element's text content."""

    selector: str
    attribute: Optional[str] = None
    multiple: bool = False
    required: bool = True

    def to_script_arg(self) -> dict[str, Any]:
        return {"selector": self.selector, "attribute": self.attribute, "multiple": self.multiple}


# Used for crawl pages and ad-hoc URLs that come without selectors.
GENERIC_PAGE_SELECTORS: Dict[str, SelectorSpec] = {
    "title": SelectorSpec("title"),
    "headings": SelectorSpec("h1, h2", multiple=True),
    "description": SelectorSpec('meta[name="description"]', attribute="content", required=False),
    "price": SelectorSpec('[itemprop="price"], .price, [class*="price"]', required=False),
}


@dataclass(frozen=True)
class ExtractionTarget:
    """A web source and how to pull fields from it.

    ``field_transforms`` map a field name to a pure function of the field's raw
    value.  For selector-based methods the raw value is the selected text (or
    list of texts); for the direct-API method, which has no selectors, it is
    the whole decoded JSON body.
    """

    url: str
    display_name: str
    field_selectors: Dict[str, SelectorSpec] = field(default_factory=dict)
    fallback_api_urls: Tuple[str, ...] = ()
    use_proxy: bool = False
    field_transforms: Dict[str, FieldTransform] = field(default_factory=dict)
    keywords: Tuple[str, ...] = ()
    domain: str = GENERAL
    use_ai_analysis: bool = True

    @property
    def field_names(self) -> tuple[str, ...]:
        names = list(self.field_selectors)
        names.extend(n for n in self.field_transforms if n not in self.field_selectors)
        return tuple(names)

    def summary(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "display_name": self.display_name,
            "fields": list(self.field_names),
            "fallback_api_urls": list(self.fallback_api_urls),
            "use_proxy": self.use_proxy,
            "domain": self.domain,
        }


@dataclass(frozen=True)
class MethodAttempt:
    """One fallback-chain step that was tried and did not win."""

    method: str
    target: str
    detail: str
    error_type: Optional[str] = None


@dataclass(frozen=True)
class ExtractionResult:
    success: bool
    data: Any
    source: str
    timestamp: float
    elapsed_ms: float
    error: Optional[str] = None
    error_type: Optional[str] = None
    method: str = ""
    degraded: bool = False
    attempts: Tuple[MethodAttempt, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PageExtractionOptions:
    """How the crawler extracts each visited page."""

    field_selectors: Dict[str, SelectorSpec] = field(default_factory=dict)
    field_transforms: Dict[str, FieldTransform] = field(default_factory=dict)
    use_proxy: bool = False
    use_ai_analysis: bool = True

    def to_target(self, url: str) -> ExtractionTarget:
        return ExtractionTarget(
            url=url,
            display_name=url,
            field_selectors=dict(self.field_selectors or GENERIC_PAGE_SELECTORS),
            use_proxy=self.use_proxy,
            field_transforms=dict(self.field_transforms),
            use_ai_analysis=self.use_ai_analysis,
        )
