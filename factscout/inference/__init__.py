"""Inference package: resilient chat-completion client and prompted tasks."""

from factscout.inference.client import (
    FALLBACK_MODEL,
    InferenceClient,
    InferenceReply,
    get_inference_client,
    is_fallback_response,
)
from factscout.inference.credentials import CredentialPool, RateLimitState
from factscout.inference.parsing import (
    ParsedReply,
    StructuredFields,
    Synthesized,
    Unparseable,
    parse_reply,
)

__all__ = [
    "FALLBACK_MODEL",
    "InferenceClient",
    "InferenceReply",
    "get_inference_client",
    "is_fallback_response",
    "CredentialPool",
    "RateLimitState",
    "ParsedReply",
    "StructuredFields",
    "Synthesized",
    "Unparseable",
    "parse_reply",
]
