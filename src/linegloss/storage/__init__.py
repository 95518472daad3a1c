"""Record persistence."""

from .record_store import (
    DEFAULT_CACHE_DIR_NAME,
    InMemoryRecordStore,
    JsonRecordStore,
    RecordStore,
    document_key,
)

__all__ = [
    "RecordStore",
    "JsonRecordStore",
    "InMemoryRecordStore",
    "document_key",
    "DEFAULT_CACHE_DIR_NAME",
]
