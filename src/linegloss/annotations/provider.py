"""Annotation provider: answers render requests and reacts to editor events."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Sequence

from ..detection.functions import FunctionDetector, FunctionSpan
from ..editor.document_model import ContentChange, DocumentState
from ..editor.events import (
    DocumentChangedEvent,
    DocumentClosedEvent,
    DocumentEvent,
    DocumentEventBus,
    DocumentSavedEvent,
    Unsubscribe,
)
from ..services.settings import Settings
from ..services.telemetry import emit
from .line_shift import apply_changes
from .reconciler import RenderEntry, reconcile
from .registry import DocumentEntry, DocumentRegistry
from .scheduler import GenerationScheduler, SchedulerConfig, Summarizer

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..storage.record_store import RecordStore

__all__ = ["AnnotationProvider"]

LOGGER = logging.getLogger(__name__)

DocumentProvider = Callable[[str], DocumentState | None]
ChangeListener = Callable[[str], None]


class AnnotationProvider:
    """Keeps function annotations for open documents positioned and up to date."""

    def __init__(
        self,
        *,
        detector: FunctionDetector,
        store: RecordStore,
        summarizer: Summarizer,
        settings: Settings | None = None,
        registry: DocumentRegistry | None = None,
        scheduler: GenerationScheduler | None = None,
    ) -> None:
        self._detector = detector
        self._settings = settings or Settings()
        self._registry = registry or DocumentRegistry(store)
        self._scheduler = scheduler or GenerationScheduler(
            summarizer=summarizer,
            registry=self._registry,
            config=SchedulerConfig(
                defer_seconds=self._settings.generation_defer_seconds,
                min_call_interval=self._settings.min_call_interval,
            ),
        )
        self._scheduler.set_update_callback(self._handle_generated)
        self._listeners: list[ChangeListener] = []
        self._subscriptions: list[Unsubscribe] = []
        self._document_provider: DocumentProvider | None = None

    @property
    def registry(self) -> DocumentRegistry:
        return self._registry

    @property
    def scheduler(self) -> GenerationScheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # Render requests
    # ------------------------------------------------------------------
    def provide_annotations(self, document: DocumentState) -> list[RenderEntry]:
        """Return the render list for *document*, scheduling generation where needed."""

        if self._is_excluded(document):
            return []
        entry = self._registry.open(document)
        if entry.render_cache is not None:
            return list(entry.render_cache)

        spans = self._detect(document)
        before = len(entry.index)
        result = reconcile(document, spans, entry.index, render_pending=self._settings.render_pending)
        if document.dirty or result.changed or before != len(entry.index):
            self._registry.persist(entry)
        emit(
            "annotations.reconcile",
            {
                "document": entry.key,
                "dirty": document.dirty,
                "functions": len(spans),
                "records": len(result.records),
                "to_generate": len(result.to_generate),
                "evicted": result.evicted,
            },
        )
        if result.to_generate:
            self._scheduler.schedule(document, result.to_generate)
        entry.render_cache = list(result.render)
        return list(result.render)

    # ------------------------------------------------------------------
    # Editor notifications
    # ------------------------------------------------------------------
    def handle_change(self, document: DocumentState, changes: Sequence[ContentChange]) -> None:
        """Live-shift cached positions after an edit; never calls the summarizer."""

        if self._is_excluded(document) or not changes:
            return
        entry = self._registry.open(document)
        if not len(entry.index):
            return
        spans = self._detect(document)
        apply_changes(document, changes, entry.index, spans)
        self._registry.persist(entry)
        entry.invalidate()
        emit("annotations.shift", {"document": entry.key, "changes": len(changes)})
        self._fire(document.document_id)

    def handle_save(self, document: DocumentState) -> None:
        if self._is_excluded(document):
            return
        entry = self._registry.get(document.document_id)
        if entry is not None:
            entry.invalidate()
        self._fire(document.document_id)

    def handle_close(self, document_id: str) -> None:
        if self._registry.close(document_id) is not None:
            LOGGER.debug("Disposed annotation state for %s", document_id)

    def on_did_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Register *listener*, called with a document id whenever annotations should be re-rendered."""

        self._listeners.append(listener)

        def _dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _dispose

    # ------------------------------------------------------------------
    # Event bus wiring
    # ------------------------------------------------------------------
    def attach(self, bus: DocumentEventBus, document_provider: DocumentProvider) -> None:
        self.detach()
        self._document_provider = document_provider
        self._subscriptions = [
            bus.subscribe(event_type, self._on_event)
            for event_type in (DocumentChangedEvent, DocumentSavedEvent, DocumentClosedEvent)
        ]

    def detach(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []
        self._document_provider = None

    async def aclose(self) -> None:
        self.detach()
        await self._scheduler.aclose()
        self._listeners.clear()

    def _on_event(self, event: DocumentEvent) -> None:
        if isinstance(event, DocumentClosedEvent):
            self.handle_close(event.document_id)
            return
        provider = self._document_provider
        document = provider(event.document_id) if provider is not None else None
        if document is None:
            return
        if isinstance(event, DocumentChangedEvent):
            self.handle_change(document, event.changes)
        elif isinstance(event, DocumentSavedEvent):
            self.handle_save(document)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _detect(self, document: DocumentState) -> list[FunctionSpan]:
        try:
            return list(self._detector.detect(document))
        except Exception:
            LOGGER.warning("Function detection failed for %s", document.document_id, exc_info=True)
            return []

    def _is_excluded(self, document: DocumentState) -> bool:
        path = document.metadata.path
        if path is None:
            return False
        text = path.as_posix()
        return any(fragment and fragment in text for fragment in self._settings.excluded_path_fragments)

    def _handle_generated(self, entry: DocumentEntry) -> None:
        self._fire(entry.document.document_id)

    def _fire(self, document_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(document_id)
            except Exception:  # pragma: no cover - listeners must not break the provider
                LOGGER.debug("Annotation change listener failed", exc_info=True)
