"""Credential pool and rate-limit state for the inference client.

Both live in one object guarded by one lock so that detecting a rate limit,
rotating to the next credential and escalating to permanent fallback happen
atomically.  Two callers that hit a limit on the same credential advance the
index once, not twice.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Iterable, Optional


@dataclass
class RateLimitState:
    consecutive_rate_limit_hits: int = 0
    using_fallback_permanently: bool = False


def mask_credential(credential: str) -> str:
    """Return a display-safe version of *credential*."""
    if len(credential) <= 12:
        return "*" * len(credential)
    return f"{credential[:8]}…{credential[-4:]}"


class CredentialPool:
    """Ordered inference credentials plus the process-wide rate-limit state."""

    def __init__(self, credentials: Iterable[str] = (), threshold: int = 3) -> None:
        self._credentials: list[str] = [c for c in credentials if c]
        self._index = 0
        self._threshold = max(1, threshold)
        self._state = RateLimitState()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._credentials)

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def state(self) -> RateLimitState:
        """A snapshot copy; mutate only through the pool's methods."""
        with self._lock:
            return replace(self._state)

    @property
    def using_fallback_permanently(self) -> bool:
        with self._lock:
            return self._state.using_fallback_permanently

    def current(self) -> Optional[tuple[int, str]]:
        """Return ``(index, credential)`` for the active credential, if any."""
        with self._lock:
            if self._index >= len(self._credentials):
                return None
            return self._index, self._credentials[self._index]

    def add(self, credential: str) -> bool:
        """Append *credential*; returns ``False`` if it is empty or already pooled."""
        credential = credential.strip()
        with self._lock:
            if not credential or credential in self._credentials:
                return False
            self._credentials.append(credential)
            return True

    def set_active(self, credential: str) -> None:
        """Make *credential* the active one, adding it to the pool if needed."""
        credential = credential.strip()
        if not credential:
            raise ValueError("credential must not be empty")
        with self._lock:
            if credential not in self._credentials:
                self._credentials.append(credential)
            self._index = self._credentials.index(credential)

    def masked(self) -> list[str]:
        with self._lock:
            return [mask_credential(c) for c in self._credentials]

    def record_rate_limit(self, used_index: int) -> bool:
        """Register a rate-limit hit seen while using credential *used_index*.

        Returns ``True`` when a fresh credential is available for an immediate
        retry, ``False`` once the pool has escalated to permanent fallback.
        """
        with self._lock:
            if self._state.using_fallback_permanently:
                return False
            self._state.consecutive_rate_limit_hits += 1

            if self._index == used_index:
                rotated = used_index + 1 < len(self._credentials)
                if rotated:
                    self._index += 1
            else:
                # Someone else already rotated past the credential we used.
                rotated = self._index < len(self._credentials)

            if not rotated or self._state.consecutive_rate_limit_hits >= self._threshold:
                self._state.using_fallback_permanently = True
                return False
            return True

    def record_success(self) -> None:
        with self._lock:
            self._state.consecutive_rate_limit_hits = 0

    def reset(self) -> None:
        """Operator reset: clear the fallback latch and return to the first credential."""
        with self._lock:
            self._state = RateLimitState()
            self._index = 0

    def status(self) -> dict:
        with self._lock:
            return {
                "using_fallback": self._state.using_fallback_permanently,
                "consecutive_rate_limit_hits": self._state.consecutive_rate_limit_hits,
                "threshold": self._threshold,
                "current_index": self._index,
                "credential_count": len(self._credentials),
            }
