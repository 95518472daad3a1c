"""Same-file call graph limited to two hops in each direction."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping, Sequence

from ..detection.functions import FunctionSpan, span_ranges
from ..editor.document_model import DocumentState

__all__ = ["CallGraphEntry", "compute_call_graph", "call_graph_to_payload"]


@dataclass(slots=True)
class CallGraphEntry:
    """Callers and callees of one function, split by distance."""

    name: str
    depth1_callers: list[str] = field(default_factory=list)
    depth2_callers: list[str] = field(default_factory=list)
    depth1_callees: list[str] = field(default_factory=list)
    depth2_callees: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def compute_call_graph(document: DocumentState, spans: Sequence[FunctionSpan]) -> list[CallGraphEntry]:
    """Build depth-1 and depth-2 caller/callee lists for the functions in *document*."""

    if not spans:
        return []
    names = sorted({span.name for span in spans})
    callees: dict[str, set[str]] = {name: set() for name in names}
    callers: dict[str, set[str]] = {name: set() for name in names}
    patterns = {name: re.compile(rf"(?<![\w$]){re.escape(name)}\s*\(") for name in names}

    for span, next_start in span_ranges(spans, document.line_count):
        # The defining line would otherwise count as a call to itself.
        body = document.slice_lines(span.start_line + 1, next_start)
        for name, pattern in patterns.items():
            if name == span.name:
                continue
            if pattern.search(body):
                callees[span.name].add(name)
                callers[name].add(span.name)

    return [
        CallGraphEntry(
            name=name,
            depth1_callers=sorted(callers[name]),
            depth2_callers=_second_hop(name, callers),
            depth1_callees=sorted(callees[name]),
            depth2_callees=_second_hop(name, callees),
        )
        for name in names
    ]


def call_graph_to_payload(entries: Sequence[CallGraphEntry]) -> list[dict[str, Any]]:
    return [entry.to_dict() for entry in entries]


def _second_hop(name: str, edges: Mapping[str, set[str]]) -> list[str]:
    first = edges.get(name, set())
    second: set[str] = set()
    for neighbour in first:
        second.update(edges.get(neighbour, set()))
    second.discard(name)
    second.difference_update(first)
    return sorted(second)
