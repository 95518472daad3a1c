"""Editor notifications and the bus that delivers them."""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable

from .document_model import ContentChange

__all__ = [
    "DocumentEvent",
    "DocumentChangedEvent",
    "DocumentSavedEvent",
    "DocumentClosedEvent",
    "DocumentEventBus",
    "Unsubscribe",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DocumentEvent:
    document_id: str
    source: str | None = None


@dataclass(slots=True, kw_only=True)
class DocumentChangedEvent(DocumentEvent):
    """Edits already applied to the document, in the order the editor made them."""

    changes: tuple[ContentChange, ...] = ()

    def __post_init__(self) -> None:
        self.changes = tuple(self.changes)


@dataclass(slots=True)
class DocumentSavedEvent(DocumentEvent):
    pass


@dataclass(slots=True, kw_only=True)
class DocumentClosedEvent(DocumentEvent):
    reason: str | None = None


Handler = Callable[[DocumentEvent], None]
Unsubscribe = Callable[[], None]


@dataclass(slots=True, eq=False)
class _Subscription:
    event_type: type[DocumentEvent]
    target: Handler | weakref.WeakMethod = field(repr=False)

    def handler(self) -> Handler | None:
        if isinstance(self.target, weakref.WeakMethod):
            return self.target()
        return self.target


class DocumentEventBus:
    """Delivers events synchronously on the publishing thread.

    A subscriber registered for a base class also receives its subclasses.
    Weak subscriptions to bound methods disappear once their owner is
    collected. A subscriber that raises is logged and the rest still run.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []
        self._lock = Lock()

    def subscribe(self, event_type: type[DocumentEvent], handler: Handler, *, weak: bool = False) -> Unsubscribe:
        target: Handler | weakref.WeakMethod = handler
        if weak:
            try:
                target = weakref.WeakMethod(handler)  # type: ignore[arg-type]
            except TypeError:
                _LOGGER.debug("%r is not a bound method; subscribing strongly", handler)
        subscription = _Subscription(event_type, target)
        with self._lock:
            self._subscriptions.append(subscription)

        def _unsubscribe() -> None:
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return _unsubscribe

    def unsubscribe(self, event_type: type[DocumentEvent], handler: Handler) -> None:
        with self._lock:
            self._subscriptions = [
                item
                for item in self._subscriptions
                if not (item.event_type is event_type and item.handler() == handler)
            ]

    def publish(self, event: DocumentEvent) -> int:
        """Deliver *event*; returns how many handlers ran."""

        with self._lock:
            live = [(item, item.handler()) for item in self._subscriptions]
            self._subscriptions = [item for item, handler in live if handler is not None]
        delivered = 0
        for item, handler in live:
            if handler is None or not isinstance(event, item.event_type):
                continue
            delivered += 1
            try:
                handler(event)
            except Exception:
                _LOGGER.exception("%s handler failed for %s", type(event).__name__, event.document_id)
        return delivered
