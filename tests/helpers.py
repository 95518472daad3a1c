"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from typing import Sequence

from linegloss.annotations.records import AnnotationUnit, FunctionRecord
from linegloss.detection.functions import FunctionSpan
from linegloss.editor.document_model import DocumentMetadata, DocumentState


class FakeSummarizer:
    """Summarizer stub returning two units per function and recording every call."""

    def __init__(self, *, fail_on: Sequence[str] = (), delay: float = 0.0) -> None:
        self.calls: list[tuple[str, str]] = []
        self._fail_on = tuple(fail_on)
        self._delay = delay

    async def summarize(self, code: str, language_id: str) -> list[AnnotationUnit]:
        self.calls.append((code, language_id))
        if self._delay:
            await asyncio.sleep(self._delay)
        if any(marker in code for marker in self._fail_on):
            raise RuntimeError("model unavailable")
        first_line = code.split("\n", 1)[0]
        return [
            AnnotationUnit(line=1, chunk_code=first_line, summary=f"Declares {first_line.strip()}"),
            AnnotationUnit(line=2, chunk_code="", summary="Computes the result"),
        ]


class StaticDetector:
    """Detector stub returning a fixed list of spans."""

    def __init__(self, spans: Sequence[FunctionSpan]) -> None:
        self.spans = list(spans)

    def detect(self, document: DocumentState) -> list[FunctionSpan]:
        return list(self.spans)


def js_document(text: str, *, document_id: str = "doc-js", dirty: bool = False) -> DocumentState:
    document = DocumentState(text=text, metadata=DocumentMetadata(language="javascript"), dirty=dirty)
    document.document_id = document_id
    return document


def two_unit_record(code: str, start_line: int, *, saved: str | None = None) -> FunctionRecord:
    name = code.split("(", 1)[0].split()[-1]
    return FunctionRecord(
        live_code=code,
        last_saved_code=code if saved is None else saved,
        start_line=start_line,
        units=[
            AnnotationUnit(line=1, chunk_code="", summary=f"{name} overview"),
            AnnotationUnit(line=2, chunk_code="", summary=f"{name} body"),
        ],
    )
