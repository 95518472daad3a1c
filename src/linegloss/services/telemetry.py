"""Process-local telemetry: named events fanned out to registered callbacks."""

from __future__ import annotations

import contextlib
import logging
from collections import defaultdict
from typing import Any, Callable, Iterator, Mapping

__all__ = ["ALL_EVENTS", "capture", "emit", "register_event_listener", "unregister_event_listener"]

LOGGER = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], None]

#: Subscribing under this name receives every event.
ALL_EVENTS = "*"

_listeners: defaultdict[str, list[Listener]] = defaultdict(list)


def register_event_listener(event_name: str, callback: Listener) -> None:
    if not event_name:
        raise ValueError("event_name must be non-empty")
    bucket = _listeners[event_name]
    if callback not in bucket:
        bucket.append(callback)


def unregister_event_listener(event_name: str, callback: Listener) -> None:
    bucket = _listeners.get(event_name)
    if bucket and callback in bucket:
        bucket.remove(callback)
    if not bucket:
        _listeners.pop(event_name, None)


@contextlib.contextmanager
def capture(event_name: str = ALL_EVENTS) -> Iterator[list[dict[str, Any]]]:
    """Collect events emitted inside the ``with`` block."""

    events: list[dict[str, Any]] = []
    register_event_listener(event_name, events.append)
    try:
        yield events
    finally:
        unregister_event_listener(event_name, events.append)


def emit(event_name: str, payload: Mapping[str, Any] | None = None) -> None:
    """Send ``{"event": event_name, **payload}`` to matching listeners.

    A failing listener is logged and skipped; emitters never see the error.
    """

    event = {"event": event_name, **(payload or {})}
    LOGGER.debug("telemetry %s %s", event_name, payload or {})
    targets = [*_listeners.get(event_name, ()), *_listeners.get(ALL_EVENTS, ())]
    for callback in targets:
        try:
            callback(dict(event))
        except Exception:
            LOGGER.warning("Telemetry listener %r failed for %s", callback, event_name, exc_info=True)
