"""Resilient wrapper around a chat-completion style inference API.

One :meth:`InferenceClient.call` performs a single POST to
``settings.inference_api_url`` with ``{model, messages, temperature,
max_tokens}`` and normalises the outcome:

- success             -> :class:`InferenceReply` with ``fallback=False``
- rate limit          -> rotate to the next credential and retry at once;
                         once the pool is exhausted (or the hit threshold is
                         reached) every later call is answered locally
- timeout             -> :class:`InferenceTimeout`
- non-2xx             -> :class:`InferenceHttpError`
- ``{"error": ...}``  -> :class:`InferenceApiError`

Rate limits never reach the caller.  Locally generated replies carry
``fallback=True`` and ``model="emergency-fallback"`` and are otherwise shaped
exactly like live ones.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Mapping, Optional, Sequence

import httpx

from factscout.config import settings
from factscout.errors import (
    InferenceApiError,
    InferenceHttpError,
    InferenceTimeout,
    RateLimited,
)
from factscout.inference.credentials import CredentialPool
from factscout.inference.emergency import generate_emergency_reply

FALLBACK_MODEL = "emergency-fallback"

_RATE_LIMIT_PHRASES = (
    "rate limit",
    "ratelimit",
    "rate-limit",
    "too many requests",
    "add 10 credits",
    "quota exceeded",
)

Messages = Sequence[Mapping[str, Any]]


@dataclass(frozen=True)
class InferenceReply:
    content: str
    model: str
    fallback: bool = False
    raw: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        """The reply in chat-completion wire shape."""
        body: dict[str, Any] = {
            "choices": [{"message": {"role": "assistant", "content": self.content}}],
            "model": self.model,
        }
        if self.fallback:
            body["_fallback"] = True
        return body


def is_fallback_response(reply: InferenceReply | Mapping[str, Any]) -> bool:
    if isinstance(reply, InferenceReply):
        return reply.fallback
    return bool(reply.get("_fallback")) or reply.get("model") == FALLBACK_MODEL


def is_rate_limit_text(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in _RATE_LIMIT_PHRASES)


def _error_message(body: Any) -> str:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(error)
    return ""


class InferenceClient:
    """Chat-completion client with credential rotation and local fallback."""

    def __init__(
        self,
        pool: CredentialPool | None = None,
        api_url: str | None = None,
        model: str | None = None,
        referer: str | None = None,
    ) -> None:
        if pool is None:
            pool = CredentialPool(settings.inference_api_keys, threshold=settings.rate_limit_threshold)
        self.pool = pool
        self.api_url = api_url or settings.inference_api_url
        self.model = model or settings.inference_model
        self.referer = referer or settings.inference_referer

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def call(
        self,
        messages: Messages,
        options: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> InferenceReply:
        """Send *messages* and return a live or locally generated reply.

        Raises:
            InferenceTimeout: The request exceeded *timeout* seconds.
            InferenceHttpError: The API returned a non-2xx, non-rate-limit status.
            InferenceApiError: The API returned an error body or an unusable shape.
        """
        if self.pool.using_fallback_permanently:
            return self._fallback(messages, "permanent fallback active")

        # One attempt per credential at most; rotation only moves forward.
        for _ in range(len(self.pool) + 1):
            current = self.pool.current()
            if current is None:
                return self._fallback(messages, "no inference credentials configured")
            index, credential = current
            try:
                reply = await self._post(credential, messages, options or {}, timeout)
            except RateLimited as exc:
                print(f"[Inference] rate limited on credential #{index}: {exc}")
                if self.pool.record_rate_limit(index):
                    print("[Inference] rotated to next credential, retrying.")
                    continue
                print("[Inference] credentials exhausted, switching to permanent fallback.")
                return self._fallback(messages, "rate limited")
            self.pool.record_success()
            return reply

        return self._fallback(messages, "rotation exhausted")

    async def check_credential(self, credential: str, timeout: float = 10.0) -> tuple[bool, str]:
        """Probe *credential* with a tiny request without touching rate-limit state."""
        probe = [{"role": "user", "content": "ping"}]
        try:
            await self._post(credential, probe, {"max_tokens": 1}, timeout)
        except RateLimited:
            return True, "valid but currently rate limited"
        except InferenceHttpError as exc:
            if exc.status in (401, 403):
                return False, "credential rejected"
            return False, str(exc)
        except (InferenceTimeout, InferenceApiError) as exc:
            return False, str(exc)
        return True, "credential accepted"

    def add_credential(self, credential: str) -> bool:
        return self.pool.add(credential)

    def set_credential(self, credential: str) -> None:
        self.pool.set_active(credential)

    def credentials(self) -> list[str]:
        return self.pool.masked()

    def reset_rate_limit_state(self) -> None:
        self.pool.reset()
        print("[Inference] rate-limit state reset.")

    def service_status(self) -> dict[str, Any]:
        status = self.pool.status()
        status["model"] = self.model
        status["api_url"] = self.api_url
        return status

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fallback(self, messages: Messages, reason: str) -> InferenceReply:
        print(f"[Inference] answering locally ({reason}).")
        content = generate_emergency_reply(messages)
        raw = {
            "choices": [{"message": {"role": "assistant", "content": content}}],
            "model": FALLBACK_MODEL,
            "_fallback": True,
        }
        return InferenceReply(content=content, model=FALLBACK_MODEL, fallback=True, raw=raw)

    async def _post(
        self,
        credential: str,
        messages: Messages,
        options: Mapping[str, Any],
        timeout: Optional[float],
    ) -> InferenceReply:
        timeout = timeout if timeout is not None else settings.inference_timeout
        payload = {
            "model": options.get("model", self.model),
            "messages": [dict(m) for m in messages],
            "temperature": options.get("temperature", settings.inference_temperature),
            "max_tokens": options.get("max_tokens", settings.inference_max_tokens),
        }
        headers = {
            "Authorization": f"Bearer {credential}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
        }

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await asyncio.wait_for(
                    client.post(self.api_url, json=payload, headers=headers),
                    timeout=timeout,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise InferenceTimeout(f"inference call exceeded {timeout:.1f}s") from exc
        except httpx.TransportError as exc:
            raise InferenceApiError(f"connection failed: {exc}") from exc

        try:
            body: Any = response.json()
        except ValueError:
            body = None
        message = _error_message(body) or response.text[:300]

        if response.status_code == 429 or (
            response.status_code >= 400 and is_rate_limit_text(message)
        ):
            raise RateLimited(message or "HTTP 429")
        if response.status_code >= 400:
            raise InferenceHttpError(response.status_code, message)
        if body is None:
            raise InferenceApiError("response body is not valid JSON")

        error = _error_message(body)
        if error:
            if is_rate_limit_text(error):
                raise RateLimited(error)
            raise InferenceApiError(error)

        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise InferenceApiError("response has no choices[0].message.content") from exc

        return InferenceReply(
            content=content or "",
            model=body.get("model", payload["model"]),
            fallback=False,
            raw=body,
        )


@lru_cache(maxsize=1)
def get_inference_client() -> InferenceClient:
    """Process-wide client sharing one credential pool across every engine."""
    return InferenceClient()
