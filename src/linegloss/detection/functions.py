"""Function span detection strategies (semantic via ``ast``, heuristic via regex)."""

from __future__ import annotations

import ast
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence

from ..editor.document_model import DocumentState

__all__ = [
    "FunctionSpan",
    "FunctionDetector",
    "PythonAstDetector",
    "RegexDetector",
    "CompositeDetector",
    "default_detector",
    "span_ranges",
]

LOGGER = logging.getLogger(__name__)

_FUNCTION_DECLARATION = re.compile(r"function\s+([A-Za-z0-9_$]+)\s*\(")
_ARROW_FUNCTION = re.compile(r"(?:const|let|var)\s+([A-Za-z0-9_$]+)\s*=\s*(?:async\s*)?\([^)]*\)\s*=>")
_PYTHON_DEF = re.compile(r"^\s*(?:async\s+)?def\s+([A-Za-z_][A-Za-z0-9_]*)\s*\(")
_GO_FUNC = re.compile(r"^\s*func\s+(?:\([^)]*\)\s*)?([A-Za-z_][A-Za-z0-9_]*)\s*\(")
_DEFAULT_PATTERNS: tuple[re.Pattern[str], ...] = (
    _FUNCTION_DECLARATION,
    _ARROW_FUNCTION,
    _PYTHON_DEF,
    _GO_FUNC,
)


@dataclass(slots=True, frozen=True)
class FunctionSpan:
    """One detected function: its name and absolute 0-based start line."""

    name: str
    start_line: int


class FunctionDetector(Protocol):
    """Returns the functions found in a document, ordered by start line."""

    def detect(self, document: DocumentState) -> list[FunctionSpan]:  # pragma: no cover - protocol
        ...


def span_ranges(spans: Sequence[FunctionSpan], line_count: int) -> list[tuple[FunctionSpan, int]]:
    """Pair each span (sorted by start) with the exclusive line where the next one begins."""

    ordered = sorted(spans, key=lambda span: span.start_line)
    ranges: list[tuple[FunctionSpan, int]] = []
    for index, span in enumerate(ordered):
        next_start = ordered[index + 1].start_line if index + 1 < len(ordered) else line_count
        ranges.append((span, next_start))
    return ranges


class PythonAstDetector:
    """Semantic detector for Python sources, including methods and nested functions."""

    languages = frozenset({"python"})

    def detect(self, document: DocumentState) -> list[FunctionSpan]:
        if document.language not in self.languages:
            return []
        try:
            tree = ast.parse(document.text)
        except SyntaxError:
            LOGGER.debug("Document %s does not parse; no semantic spans", document.document_id)
            return []
        spans: list[FunctionSpan] = []
        for node in ast.walk(tree):
            if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                continue
            first_line = min([node.lineno, *(decorator.lineno for decorator in node.decorator_list)])
            spans.append(FunctionSpan(name=node.name, start_line=first_line - 1))
        return _ordered(spans)


class RegexDetector:
    """Line-by-line heuristic detector used when no semantic strategy applies."""

    def __init__(self, patterns: Iterable[re.Pattern[str]] | None = None) -> None:
        self._patterns = tuple(patterns or _DEFAULT_PATTERNS)

    def detect(self, document: DocumentState) -> list[FunctionSpan]:
        spans: list[FunctionSpan] = []
        for index, line in enumerate(document.text.split("\n")):
            for pattern in self._patterns:
                match = pattern.search(line)
                if match:
                    spans.append(FunctionSpan(name=match.group(1), start_line=index))
                    break
        return spans


class CompositeDetector:
    """Tries each strategy in order; the first non-empty result wins."""

    def __init__(self, strategies: Sequence[FunctionDetector]) -> None:
        if not strategies:
            raise ValueError("at least one detection strategy is required")
        self._strategies = tuple(strategies)

    def detect(self, document: DocumentState) -> list[FunctionSpan]:
        for strategy in self._strategies:
            try:
                spans = strategy.detect(document)
            except Exception:
                LOGGER.warning(
                    "Function detector %s failed for %s",
                    type(strategy).__name__,
                    document.document_id,
                    exc_info=True,
                )
                continue
            if spans:
                return _ordered(spans)
        return []


def default_detector() -> CompositeDetector:
    return CompositeDetector([PythonAstDetector(), RegexDetector()])


def _ordered(spans: Iterable[FunctionSpan]) -> list[FunctionSpan]:
    return sorted(set(spans), key=lambda span: (span.start_line, span.name))
