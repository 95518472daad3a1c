"""Dataclasses representing editor document state and content changes."""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

_LANGUAGE_SUFFIXES: dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".js": "javascript",
    ".jsx": "javascriptreact",
    ".mjs": "javascript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
}


def _hash_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def language_for_path(path: Path | str | None) -> str:
    """Return the language identifier for *path* based on its suffix."""

    if path is None:
        return "text"
    return _LANGUAGE_SUFFIXES.get(Path(path).suffix.lower(), "text")


@dataclass(slots=True, frozen=True)
class ContentChange:
    """A single text replacement expressed in pre-edit line/character positions."""

    start_line: int
    start_character: int
    end_line: int
    end_character: int
    text: str = ""

    @classmethod
    def insert(cls, line: int, character: int, text: str) -> "ContentChange":
        return cls(line, character, line, character, text)

    @property
    def lines_added(self) -> int:
        return self.text.count("\n")

    @property
    def lines_removed(self) -> int:
        return self.end_line - self.start_line

    @property
    def delta(self) -> int:
        return self.lines_added - self.lines_removed


@dataclass(slots=True)
class DocumentMetadata:
    """Metadata describing the currently loaded document."""

    path: Optional[Path] = None
    language: str = "text"


@dataclass(slots=True)
class DocumentState:
    """Snapshot of an open source document as seen by the annotation core."""

    text: str = ""
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    dirty: bool = False
    document_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    version_id: int = 1
    content_hash: str = field(default_factory=str)

    def __post_init__(self) -> None:
        if not self.content_hash:
            self.content_hash = _hash_text(self.text)

    @classmethod
    def from_path(cls, path: Path | str, *, document_id: str | None = None) -> "DocumentState":
        """Read *path* from disk and return a clean document for it."""

        target = Path(path).expanduser().resolve()
        text = target.read_text(encoding="utf-8")
        metadata = DocumentMetadata(path=target, language=language_for_path(target))
        return cls(text=text, metadata=metadata, document_id=document_id or str(target))

    @property
    def language(self) -> str:
        return self.metadata.language

    @property
    def line_count(self) -> int:
        return self.text.count("\n") + 1

    def line_text(self, line: int) -> str:
        pieces = self._line_pieces()
        if line < 0 or line >= len(pieces):
            raise IndexError(f"line {line} out of range")
        return pieces[line].rstrip("\r\n")

    def slice_lines(self, start: int, end: int) -> str:
        """Return the text from the start of line *start* up to the start of line *end*."""

        pieces = self._line_pieces()
        start = max(0, min(start, len(pieces)))
        end = max(start, min(end, len(pieces)))
        return "".join(pieces[start:end])

    def offset_at(self, line: int, character: int) -> int:
        pieces = self._line_pieces()
        line = max(0, min(line, len(pieces) - 1))
        offset = sum(len(piece) for piece in pieces[:line])
        body = pieces[line].rstrip("\r\n")
        return offset + max(0, min(character, len(body)))

    def apply_change(self, change: ContentChange) -> None:
        """Replace the range covered by *change* and mark the document dirty."""

        start = self.offset_at(change.start_line, change.start_character)
        end = self.offset_at(change.end_line, change.end_character)
        if end < start:
            start, end = end, start
        self.update_text(self.text[:start] + change.text + self.text[end:])

    def update_text(self, new_text: str) -> None:
        """Update the document text and mark it dirty."""

        self.text = new_text
        self.dirty = True
        self.version_id += 1
        self.content_hash = _hash_text(new_text)

    def mark_saved(self) -> None:
        self.dirty = False

    def _line_pieces(self) -> list[str]:
        # One entry per line, newline kept; a trailing newline yields a final empty line.
        pieces = self.text.split("\n")
        return [piece + "\n" for piece in pieces[:-1]] + [pieces[-1]]
