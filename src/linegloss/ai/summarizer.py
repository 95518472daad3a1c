"""Turns model responses into annotation units for a function."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

from ..annotations.records import AnnotationUnit, build_units
from ..errors import SummarizationError
from .prompts import build_function_summary_messages, build_unit_messages

__all__ = ["SemanticUnitSummarizer", "CompletionClient", "parse_unit_response"]

LOGGER = logging.getLogger(__name__)
_UNIT_LINE = re.compile(r"^(\d+)\s*[|:-]\s*(.+)$")


class CompletionClient(Protocol):
    async def complete(self, messages: Any, **kwargs: Any) -> str:  # pragma: no cover - protocol
        ...


def parse_unit_response(response: str) -> list[tuple[int, str]]:
    """Parse ``N | summary`` lines, falling back to a JSON array of ``{line, summary}``."""

    pairs: list[tuple[int, str]] = []
    for raw in response.splitlines():
        match = _UNIT_LINE.match(raw.strip())
        if match:
            pairs.append((int(match.group(1)), match.group(2).strip()))
    if pairs:
        return pairs
    try:
        parsed = json.loads(response)
    except (TypeError, ValueError):
        return []
    if not isinstance(parsed, list):
        return []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        line, summary = item.get("line"), item.get("summary")
        if isinstance(line, int) and not isinstance(line, bool) and isinstance(summary, str):
            pairs.append((line, summary.strip()))
    return pairs


class SemanticUnitSummarizer:
    """Summarization service backed by a chat-completion client."""

    def __init__(self, client: CompletionClient, *, comment_prefix: str = "# >") -> None:
        self._client = client
        self._comment_prefix = comment_prefix

    async def summarize(self, code: str, language_id: str) -> list[AnnotationUnit]:
        if not code.strip():
            raise SummarizationError("cannot summarize empty code")
        response = await self._client.complete(build_unit_messages(code, language_id))
        pairs = parse_unit_response(response or "")
        if not pairs:
            LOGGER.debug("Unparseable unit response: %.200s", response)
            raise SummarizationError("model response contained no annotation units")
        line_total = max(1, len(code.rstrip("\n").split("\n")))
        clamped = [(max(1, min(line, line_total)), summary) for line, summary in pairs if summary]
        units = build_units(code, clamped)
        LOGGER.debug("Model returned %d unit(s)", len(units))
        return units

    async def summarize_function(self, code: str, language_id: str) -> str:
        """Return a short prose summary of a whole function, one prefixed comment per line."""

        response = await self._client.complete(build_function_summary_messages(code, language_id))
        text = (response or "").strip()
        if not text:
            raise SummarizationError("model returned an empty summary")
        return "\n".join(f"{self._comment_prefix} {line}".rstrip() for line in text.splitlines())
