"""Extraction package: fallback-chain engine, targets and result models."""

from factscout.extraction.engine import ExtractionEngine
from factscout.extraction.models import (
    GENERIC_PAGE_SELECTORS,
    PLACEHOLDER_SOURCE,
    TRIAGE_SOURCE,
    ExtractionResult,
    ExtractionTarget,
    MethodAttempt,
    PageExtractionOptions,
    SelectorSpec,
)
from factscout.extraction.targets import DEFAULT_TARGETS, select_relevant_targets

__all__ = [
    "ExtractionEngine",
    "GENERIC_PAGE_SELECTORS",
    "PLACEHOLDER_SOURCE",
    "TRIAGE_SOURCE",
    "ExtractionResult",
    "ExtractionTarget",
    "MethodAttempt",
    "PageExtractionOptions",
    "SelectorSpec",
    "DEFAULT_TARGETS",
    "select_relevant_targets",
]
