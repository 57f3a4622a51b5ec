"""Typed event channel that the crawler and extraction engine publish to.

Any number of subscribers (UI bridge, SSE stream, logger, test harness) can
listen to the same run.  A subscriber that raises is reported and skipped so
it can never break the publisher.

Event shapes
------------
``ProgressEvent``    percent (0-100), message, partial_result
``CompletionEvent``  result (a finalized ``CrawlRunResult`` or ``ExtractionResult``)
``ErrorEvent``       message
``StepEvent``        step_id, label, status, detail
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, is_dataclass
from enum import Enum
from typing import Any, Callable, Union


@dataclass(frozen=True)
class ProgressEvent:
    percent: float
    message: str
    partial_result: Any = None


@dataclass(frozen=True)
class CompletionEvent:
    result: Any


@dataclass(frozen=True)
class ErrorEvent:
    message: str


@dataclass(frozen=True)
class StepEvent:
    step_id: str
    label: str
    status: str
    detail: str | None = None


Event = Union[ProgressEvent, CompletionEvent, ErrorEvent, StepEvent]
Subscriber = Callable[[Event], None]

_EVENT_NAMES = {
    ProgressEvent: "progress",
    CompletionEvent: "done",
    ErrorEvent: "error",
    StepEvent: "step",
}


class EventBus:
    """Fan-out publisher of :data:`Event` values."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: Event) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception as exc:  # noqa: BLE001
                print(f"[Events] subscriber {callback!r} failed on {type(event).__name__}: {exc}")


def _plain(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {k: _plain(v) for k, v in asdict(value).items()}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def event_to_dict(event: Event) -> dict[str, Any]:
    """Serialise *event* into a JSON-ready dict with an ``event`` discriminator."""
    payload = _plain(event)
    payload["event"] = _EVENT_NAMES[type(event)]
    return payload
