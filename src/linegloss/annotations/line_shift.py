"""Live line-shift: keep cached line numbers aligned with unsaved edits.

Runs on every change notification without calling the summarization service.
Only positional fields and ``live_code`` are touched; summaries never change.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from ..detection.functions import FunctionSpan, span_ranges
from ..editor.document_model import ContentChange, DocumentState
from .records import AnnotationUnit, FunctionRecord, RecordIndex

__all__ = ["apply_changes", "shift_units"]

LOGGER = logging.getLogger(__name__)


def apply_changes(
    document: DocumentState,
    changes: Sequence[ContentChange],
    records: Iterable[FunctionRecord] | RecordIndex,
    spans: Sequence[FunctionSpan],
) -> list[FunctionRecord]:
    """Apply *changes* (pre-edit coordinates) to *records* in place.

    *document* and *spans* describe the post-edit state. Changes are processed
    from last to first so a later shift never double-counts an earlier one.
    """

    index = records if isinstance(records, RecordIndex) else RecordIndex(records)
    ranges = span_ranges(spans, document.line_count)

    for change in reversed(tuple(changes)):
        change_start = change.start_line
        delta = change.delta

        moved: set[int] = set()
        if delta:
            for record in index:
                if record.start_line > change_start:
                    record.start_line += delta
                    moved.add(id(record))

        containing = _containing_record(document, index, ranges, change_start, moved)
        if containing is None:
            continue
        span, next_start, record = containing

        old_code = record.live_code
        record.live_code = document.slice_lines(span.start_line, next_start)
        if record.live_code != old_code:
            kept = index.rekey(record, old_code)
            if kept is not record:
                LOGGER.debug("Refreshed record for %s collided with a fresher record", span.name)
                continue
        if delta:
            record.units = shift_units(
                record,
                change_start - record.start_line,
                delta,
                line_replaced=change.start_character == 0 and change.lines_removed > 0,
            )

    return index.records()


def shift_units(
    record: FunctionRecord,
    relative_start: int,
    delta: int,
    *,
    line_replaced: bool = False,
) -> list[AnnotationUnit]:
    """Shift every unit whose 0-based line lies strictly after *relative_start*.

    Units inside a deleted range collapse onto the edit line, so lines stay
    1-based and non-decreasing. When several units land on one line the
    first is kept, unless the edit replaced that line from its first column
    (``line_replaced``), in which case the last one, whose code survived, is kept.
    """

    floor = relative_start + 1
    shifted = [
        unit.shifted(max(delta, floor - unit.line))
        if unit.line - 1 > relative_start
        else unit
        for unit in record.units
    ]
    result: list[AnnotationUnit] = []
    for unit in shifted:
        if result and result[-1].line == unit.line:
            if line_replaced:
                result[-1] = unit
            continue
        result.append(unit)
    return result


def _containing_record(
    document: DocumentState,
    index: RecordIndex,
    ranges: Sequence[tuple[FunctionSpan, int]],
    line: int,
    moved: set[int],
) -> tuple[FunctionSpan, int, FunctionRecord] | None:
    # A change on a boundary line touches both neighbours; the later one wins
    # unless its record just moved below the edit.
    found: tuple[FunctionSpan, int, FunctionRecord] | None = None
    for span, next_start in ranges:
        if span.start_line > line:
            break
        if line > next_start:
            continue
        candidates = [
            record for record in index if record.start_line == span.start_line and id(record) not in moved
        ]
        if not candidates:
            continue
        current = document.slice_lines(span.start_line, next_start)
        found = (span, next_start, _closest_record(candidates, current))
    return found


def _closest_record(candidates: list[FunctionRecord], current: str) -> FunctionRecord:
    """Pick the record whose code shares the most leading and trailing lines with *current*.

    An edit only rewrites the middle of the live record's code, while an
    orphan left at the same start line usually differs throughout.
    """

    if len(candidates) == 1:
        return candidates[0]
    new_lines = current.splitlines()

    def _shared(record: FunctionRecord) -> int:
        old_lines = record.live_code.splitlines()
        limit = min(len(old_lines), len(new_lines))
        head = 0
        while head < limit and old_lines[head] == new_lines[head]:
            head += 1
        tail = 0
        while tail < limit - head and old_lines[-1 - tail] == new_lines[-1 - tail]:
            tail += 1
        return head + tail

    return max(candidates, key=_shared)
