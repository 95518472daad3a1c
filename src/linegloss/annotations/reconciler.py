"""Matching detected functions against cached annotation records.

A reconciliation pass takes the functions currently detected in a document and
the records cached for it and decides, per function, whether the cached units
can be reused, must be regenerated, or whether nothing can be shown yet. Records
are addressed by the exact text of the function they describe, so a function
that is renamed or moved keeps its annotations as long as its body is unchanged.

The pass is pure apart from refreshing ``start_line`` on matched records: it
never calls the summarization service and never touches the document.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ..detection.functions import FunctionSpan, span_ranges
from ..editor.document_model import DocumentState
from .records import FunctionRecord, RecordIndex, RecordState, classify

__all__ = [
    "Decision",
    "FunctionSlice",
    "GenerationTask",
    "ReconcileResult",
    "RenderEntry",
    "decide",
    "function_slices",
    "reconcile",
]

LOGGER = logging.getLogger(__name__)


class Decision(enum.Enum):
    REUSE = "reuse"
    REUSE_AND_REGENERATE = "reuse_and_regenerate"
    GENERATE = "generate"
    SKIP = "skip"


_DECISIONS: dict[tuple[RecordState, bool], Decision] = {
    (RecordState.FRESH, False): Decision.REUSE,
    (RecordState.FRESH, True): Decision.REUSE,
    (RecordState.STALE, True): Decision.REUSE,
    (RecordState.STALE, False): Decision.REUSE_AND_REGENERATE,
    (RecordState.ORPHANED, False): Decision.GENERATE,
    (RecordState.ORPHANED, True): Decision.SKIP,
}


def decide(state: RecordState, dirty: bool) -> Decision:
    """Look up what to do with a function given its record state and the document's dirty flag.

    ``RecordState.ORPHANED`` stands for "no record matches this function".
    Dirty documents never trigger generation.
    """

    return _DECISIONS[(state, bool(dirty))]


@dataclass(slots=True, frozen=True)
class FunctionSlice:
    span: FunctionSpan
    end_line: int
    code: str

    @property
    def start_line(self) -> int:
        return self.span.start_line

    def clamp(self, line: int) -> int:
        return max(self.span.start_line, min(line, max(self.span.start_line, self.end_line - 1)))


@dataclass(slots=True, frozen=True)
class GenerationTask:
    span: FunctionSpan
    code: str


@dataclass(slots=True, frozen=True)
class RenderEntry:
    """One annotation to draw above ``line`` (absolute, 0-based)."""

    line: int
    text: str
    kind: str = "line"
    function_name: str | None = None


@dataclass(slots=True)
class ReconcileResult:
    render: list[RenderEntry] = field(default_factory=list)
    records: list[FunctionRecord] = field(default_factory=list)
    to_generate: list[GenerationTask] = field(default_factory=list)
    deferred: list[FunctionSpan] = field(default_factory=list)
    evicted: int = 0
    changed: bool = False


def function_slices(document: DocumentState, spans: Sequence[FunctionSpan]) -> list[FunctionSlice]:
    """Cut the document into per-function code slices bounded by the next function's start."""

    slices: list[FunctionSlice] = []
    for span, next_start in span_ranges(spans, document.line_count):
        code = document.slice_lines(span.start_line, next_start)
        slices.append(FunctionSlice(span=span, end_line=next_start, code=code))
    return slices


def reconcile(
    document: DocumentState,
    spans: Sequence[FunctionSpan],
    cached_records: Iterable[FunctionRecord] | RecordIndex,
    *,
    render_pending: bool = False,
) -> ReconcileResult:
    """Reconcile *spans* with *cached_records* and produce the render list."""

    index = cached_records if isinstance(cached_records, RecordIndex) else RecordIndex(cached_records)
    dirty = document.dirty
    result = ReconcileResult()
    matched: list[FunctionRecord] = []
    queued_codes: set[str] = set()

    for piece in function_slices(document, spans):
        record = index.get(piece.code)
        state = RecordState.ORPHANED if record is None else classify(record, {piece.code})
        decision = decide(state, dirty)

        if record is not None:
            matched.append(record)
            if record.start_line != piece.start_line:
                record.start_line = piece.start_line
                result.changed = True

        if decision in (Decision.GENERATE, Decision.REUSE_AND_REGENERATE):
            if piece.code not in queued_codes:
                queued_codes.add(piece.code)
                result.to_generate.append(GenerationTask(span=piece.span, code=piece.code))
        elif decision is Decision.SKIP:
            LOGGER.debug("Document dirty; deferring generation for %s", piece.span.name)
            result.deferred.append(piece.span)

        if record is not None and record.units:
            result.render.extend(_render_record(document, piece, record))
        elif render_pending and decision is not Decision.REUSE:
            result.render.append(
                RenderEntry(
                    line=_clamp_document(document, piece.start_line),
                    text="Annotation pending",
                    kind="pending",
                    function_name=piece.span.name,
                )
            )

    if dirty:
        result.records = index.records()
    else:
        result.evicted = index.retain(matched)
        if result.evicted:
            LOGGER.debug("Evicted %d orphaned record(s) from %s", result.evicted, document.document_id)
            result.changed = True
        result.records = index.records()
    return result


def _render_record(document: DocumentState, piece: FunctionSlice, record: FunctionRecord) -> list[RenderEntry]:
    entries: list[RenderEntry] = []
    for position, unit in enumerate(record.units):
        if position == 0:
            line = piece.start_line
            kind = "function"
        else:
            line = piece.clamp(piece.start_line + unit.line - 1)
            kind = "line"
        entries.append(
            RenderEntry(
                line=_clamp_document(document, line),
                text=unit.summary,
                kind=kind,
                function_name=piece.span.name,
            )
        )
    return entries


def _clamp_document(document: DocumentState, line: int) -> int:
    return max(0, min(line, document.line_count - 1))
