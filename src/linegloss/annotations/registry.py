"""Per-document state owned by the annotation service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator

from ..editor.document_model import DocumentState
from .reconciler import RenderEntry
from .records import RecordIndex

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..storage.record_store import RecordStore

__all__ = ["DocumentEntry", "DocumentRegistry"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DocumentEntry:
    """Records, render cache and generation marker for one open document."""

    key: str
    document: DocumentState
    index: RecordIndex = field(default_factory=RecordIndex)
    render_cache: list[RenderEntry] | None = None
    batch: asyncio.Task[None] | None = None

    @property
    def generation_pending(self) -> bool:
        return self.batch is not None and not self.batch.done()

    def invalidate(self) -> None:
        self.render_cache = None


class DocumentRegistry:
    """Maps canonical document keys to their :class:`DocumentEntry`.

    Entries are created on first open (hydrated from the store) and disposed
    explicitly on close.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store
        self._entries: dict[str, DocumentEntry] = {}
        self._ids: dict[str, str] = {}

    @property
    def store(self) -> RecordStore:
        return self._store

    def key_for(self, document: DocumentState) -> str:
        return self._store.key_for(document)

    def open(self, document: DocumentState) -> DocumentEntry:
        key = self.key_for(document)
        entry = self._entries.get(key)
        if entry is not None:
            entry.document = document
            self._ids[document.document_id] = key
            return entry
        records = None
        try:
            records = self._store.load(key)
        except Exception:
            LOGGER.warning("Unable to load annotation cache for %s", key, exc_info=True)
        entry = DocumentEntry(key=key, document=document, index=RecordIndex(records or ()))
        self._entries[key] = entry
        self._ids[document.document_id] = key
        LOGGER.debug("Opened %s with %d cached record(s)", key, len(entry.index))
        return entry

    def get(self, document_id: str) -> DocumentEntry | None:
        key = self._ids.get(document_id, document_id)
        return self._entries.get(key)

    def persist(self, entry: DocumentEntry) -> None:
        try:
            self._store.save(entry.key, entry.index.records())
        except Exception:
            LOGGER.warning("Unable to persist annotation cache for %s", entry.key, exc_info=True)

    def close(self, document_id: str) -> DocumentEntry | None:
        key = self._ids.pop(document_id, document_id)
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        for other_id, other_key in list(self._ids.items()):
            if other_key == key:
                del self._ids[other_id]
        if entry.batch is not None:
            entry.batch.cancel()
            entry.batch = None
        entry.invalidate()
        return entry

    def __iter__(self) -> Iterator[DocumentEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)
