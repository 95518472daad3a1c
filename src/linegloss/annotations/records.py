"""Annotation records: the persisted, content-addressed unit of caching."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Sequence

__all__ = [
    "AnnotationUnit",
    "FunctionRecord",
    "RecordState",
    "RecordIndex",
    "classify",
    "build_units",
    "records_to_payload",
    "records_from_payload",
]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class AnnotationUnit:
    """Explanation of one chunk of a function.

    ``line`` is 1-based and relative to the owning function's first line.
    """

    line: int
    chunk_code: str
    summary: str

    def to_dict(self) -> dict[str, Any]:
        return {"line": self.line, "chunk_code": self.chunk_code, "summary": self.summary}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AnnotationUnit":
        return cls(
            line=int(payload["line"]),
            chunk_code=str(payload.get("chunk_code") or ""),
            summary=str(payload.get("summary") or ""),
        )

    def shifted(self, delta: int) -> "AnnotationUnit":
        return AnnotationUnit(line=self.line + delta, chunk_code=self.chunk_code, summary=self.summary)


@dataclass(slots=True)
class FunctionRecord:
    """Cached annotations for one function instance, identified by its code."""

    live_code: str
    last_saved_code: str
    start_line: int = 0
    units: list[AnnotationUnit] = field(default_factory=list)

    @property
    def is_fresh(self) -> bool:
        return self.live_code == self.last_saved_code

    def to_dict(self) -> dict[str, Any]:
        return {
            "live_code": self.live_code,
            "last_saved_code": self.last_saved_code,
            "start_line": self.start_line,
            "units": [unit.to_dict() for unit in self.units],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FunctionRecord":
        live_code = payload.get("live_code")
        if not isinstance(live_code, str):
            raise ValueError("record payload has no live_code")
        last_saved = payload.get("last_saved_code")
        units: list[AnnotationUnit] = []
        for unit_payload in payload.get("units") or ():
            if not isinstance(unit_payload, Mapping):
                continue
            try:
                units.append(AnnotationUnit.from_dict(unit_payload))
            except (KeyError, TypeError, ValueError):
                LOGGER.debug("Dropping malformed annotation unit %r", unit_payload)
        units.sort(key=lambda unit: unit.line)
        try:
            start_line = int(payload.get("start_line") or 0)
        except (TypeError, ValueError):
            start_line = 0
        return cls(
            live_code=live_code,
            last_saved_code=last_saved if isinstance(last_saved, str) else "",
            start_line=start_line,
            units=units,
        )


class RecordState(enum.Enum):
    """Lifecycle state of a record relative to the current document."""

    FRESH = "fresh"
    STALE = "stale"
    ORPHANED = "orphaned"


def classify(record: FunctionRecord, live_codes: Iterable[str]) -> RecordState:
    """Return the state of *record* given the code slices currently in the document."""

    codes = live_codes if isinstance(live_codes, (set, frozenset)) else set(live_codes)
    if record.live_code not in codes:
        return RecordState.ORPHANED
    return RecordState.FRESH if record.is_fresh else RecordState.STALE


class RecordIndex:
    """Content-addressed collection of records keyed by ``live_code``.

    Insertion order is preserved so that persisted lists stay stable across passes.
    """

    def __init__(self, records: Iterable[FunctionRecord] | None = None) -> None:
        self._records: dict[str, FunctionRecord] = {}
        for record in records or ():
            self.put(record, prefer_fresh=True)

    def get(self, live_code: str) -> FunctionRecord | None:
        return self._records.get(live_code)

    def put(self, record: FunctionRecord, *, prefer_fresh: bool = False) -> FunctionRecord:
        """Insert *record*, replacing any record with the same code.

        With ``prefer_fresh`` a stale newcomer never displaces a fresh record.
        """

        existing = self._records.get(record.live_code)
        if existing is not None and existing is not record and prefer_fresh:
            if existing.is_fresh and not record.is_fresh:
                return existing
        self._records[record.live_code] = record
        return record

    def rekey(self, record: FunctionRecord, old_code: str) -> FunctionRecord:
        """Move *record* from *old_code* to its current ``live_code``."""

        if self._records.get(old_code) is record:
            del self._records[old_code]
        return self.put(record, prefer_fresh=True)

    def remove(self, live_code: str) -> FunctionRecord | None:
        return self._records.pop(live_code, None)

    def retain(self, keep: Iterable[FunctionRecord]) -> int:
        """Drop every record not in *keep*; return how many were removed."""

        keep_ids = {id(record) for record in keep}
        doomed = [code for code, record in self._records.items() if id(record) not in keep_ids]
        for code in doomed:
            del self._records[code]
        return len(doomed)

    def records(self) -> list[FunctionRecord]:
        return list(self._records.values())

    def __contains__(self, live_code: object) -> bool:
        return live_code in self._records

    def __iter__(self) -> Iterator[FunctionRecord]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)


def build_units(code: str, raw_units: Sequence[tuple[int, str]]) -> list[AnnotationUnit]:
    """Create units from ``(line, summary)`` pairs, attaching the code chunk each describes."""

    lines = code.split("\n")
    if lines and lines[-1] == "":
        lines = lines[:-1]
    ordered = sorted(raw_units, key=lambda item: item[0])
    units: list[AnnotationUnit] = []
    for index, (line, summary) in enumerate(ordered):
        chunk_end = ordered[index + 1][0] - 1 if index + 1 < len(ordered) else len(lines)
        chunk = "\n".join(lines[max(0, line - 1):max(0, chunk_end)])
        units.append(AnnotationUnit(line=line, chunk_code=chunk, summary=summary.strip()))
    return units


def records_to_payload(records: Iterable[FunctionRecord]) -> list[dict[str, Any]]:
    return [record.to_dict() for record in records]


def records_from_payload(payload: Any) -> list[FunctionRecord] | None:
    """Parse a persisted record list; returns ``None`` when the payload is not a list."""

    if not isinstance(payload, list):
        return None
    records: list[FunctionRecord] = []
    for item in payload:
        if not isinstance(item, Mapping):
            continue
        try:
            records.append(FunctionRecord.from_dict(item))
        except ValueError:
            LOGGER.debug("Skipping record without code in persisted payload")
    return records
