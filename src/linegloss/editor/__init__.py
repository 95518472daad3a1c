"""Editor-side document models and notifications."""

from .document_model import ContentChange, DocumentMetadata, DocumentState, language_for_path
from .events import (
    DocumentChangedEvent,
    DocumentClosedEvent,
    DocumentEvent,
    DocumentEventBus,
    DocumentSavedEvent,
)

__all__ = [
    "ContentChange",
    "DocumentMetadata",
    "DocumentState",
    "language_for_path",
    "DocumentEvent",
    "DocumentChangedEvent",
    "DocumentSavedEvent",
    "DocumentClosedEvent",
    "DocumentEventBus",
]
