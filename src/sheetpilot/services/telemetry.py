"""In-process telemetry events emitted by the agent loop."""

from __future__ import annotations

import logging
from collections import deque
from threading import Lock
from typing import Any, Callable, Iterable, Mapping

LOGGER = logging.getLogger(__name__)

EventListener = Callable[[dict[str, Any]], None]

_EVENT_LISTENERS: dict[str, list[EventListener]] = {}

CONVERSATION_COMPACTED = "conversation_compacted"
TOOL_DISPATCHED = "tool_dispatched"
CONFIRMATION_REQUIRED = "confirmation_required"
CONFIRMATION_RESOLVED = "confirmation_resolved"
PENDING_DISCARDED = "pending_discarded"
TURN_COMPLETED = "turn_completed"

KNOWN_EVENTS: tuple[str, ...] = (
    CONVERSATION_COMPACTED,
    TOOL_DISPATCHED,
    CONFIRMATION_REQUIRED,
    CONFIRMATION_RESOLVED,
    PENDING_DISCARDED,
    TURN_COMPLETED,
)


def register_event_listener(event_name: str, callback: EventListener) -> None:
    """Register a callback invoked whenever :func:`emit` fires *event_name*."""

    if not event_name or callback is None:
        return
    listeners = _EVENT_LISTENERS.setdefault(event_name, [])
    if callback not in listeners:
        listeners.append(callback)


def unregister_event_listener(event_name: str, callback: EventListener) -> None:
    listeners = _EVENT_LISTENERS.get(event_name)
    if not listeners:
        return
    try:
        listeners.remove(callback)
    except ValueError:
        return
    if not listeners:
        _EVENT_LISTENERS.pop(event_name, None)


def emit(event_name: str, payload: Mapping[str, Any] | None = None) -> None:
    """Broadcast a structured telemetry event to in-process listeners."""

    if not event_name:
        return
    event_payload: dict[str, Any] = {"event": event_name}
    if payload:
        event_payload.update(payload)
    listeners = list(_EVENT_LISTENERS.get(event_name, ()))
    for callback in listeners:
        try:
            callback(dict(event_payload))
        except Exception:  # pragma: no cover - listeners must not break emitters
            LOGGER.debug("Telemetry listener %s failed", callback, exc_info=True)
    LOGGER.debug("Telemetry emit %s: %s", event_name, event_payload)


class InMemoryEventSink:
    """Ring buffer collecting emitted events for local inspection and tests."""

    def __init__(self, capacity: int = 200) -> None:
        self._capacity = max(10, capacity)
        self._buffer: deque[dict[str, Any]] = deque(maxlen=self._capacity)
        self._lock = Lock()
        self._attached: list[str] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    def attach(self, event_names: Iterable[str] = KNOWN_EVENTS) -> "InMemoryEventSink":
        for name in event_names:
            if name in self._attached:
                continue
            register_event_listener(name, self.record)
            self._attached.append(name)
        return self

    def detach(self) -> None:
        for name in self._attached:
            unregister_event_listener(name, self.record)
        self._attached.clear()

    def record(self, payload: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.append(dict(payload))

    def tail(self, limit: int | None = None) -> list[dict[str, Any]]:
        with self._lock:
            events = list(self._buffer)
        if limit is None or limit >= len(events):
            return events
        return events[-limit:]

    def named(self, event_name: str) -> list[dict[str, Any]]:
        return [event for event in self.tail() if event.get("event") == event_name]

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


__all__ = [
    "CONFIRMATION_REQUIRED",
    "CONFIRMATION_RESOLVED",
    "CONVERSATION_COMPACTED",
    "EventListener",
    "InMemoryEventSink",
    "KNOWN_EVENTS",
    "PENDING_DISCARDED",
    "TOOL_DISPATCHED",
    "TURN_COMPLETED",
    "emit",
    "register_event_listener",
    "unregister_event_listener",
]
