"""Deferred, per-document batches of summarization calls."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol, Sequence

from ..editor.document_model import DocumentState
from ..services.telemetry import emit
from .reconciler import GenerationTask
from .records import AnnotationUnit, FunctionRecord
from .registry import DocumentEntry, DocumentRegistry

__all__ = ["GenerationScheduler", "SchedulerConfig", "Summarizer"]

LOGGER = logging.getLogger(__name__)

UpdateCallback = Callable[[DocumentEntry], None]


class Summarizer(Protocol):
    async def summarize(self, code: str, language_id: str) -> Sequence[AnnotationUnit]:  # pragma: no cover
        ...


@dataclass(slots=True)
class SchedulerConfig:
    """Tunable parameters for generation batches."""

    defer_seconds: float = 0.0
    min_call_interval: float = 0.0


class GenerationScheduler:
    """Runs at most one generation batch per document, one summarizer call at a time."""

    def __init__(
        self,
        *,
        summarizer: Summarizer,
        registry: DocumentRegistry,
        config: SchedulerConfig | None = None,
        on_updated: UpdateCallback | None = None,
    ) -> None:
        self._summarizer = summarizer
        self._registry = registry
        self._config = config or SchedulerConfig()
        self._on_updated = on_updated
        self._last_call_at: float | None = None

    def set_update_callback(self, callback: UpdateCallback | None) -> None:
        self._on_updated = callback

    def is_pending(self, document_id: str) -> bool:
        entry = self._registry.get(document_id)
        return bool(entry and entry.generation_pending)

    def schedule(self, document: DocumentState, tasks: Iterable[GenerationTask]) -> bool:
        """Queue a batch for *document*; returns ``False`` when coalesced or empty."""

        queued = list(tasks)
        if not queued:
            return False
        entry = self._registry.open(document)
        if entry.generation_pending:
            LOGGER.debug("Generation already pending for %s; coalescing", entry.key)
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.debug("No running event loop; generation for %s waits for the next pass", entry.key)
            return False
        entry.batch = loop.create_task(self._run_batch(entry, queued))
        return True

    async def wait_idle(self, document_id: str) -> None:
        """Wait until no batch is pending for *document_id*."""

        while True:
            entry = self._registry.get(document_id)
            batch = entry.batch if entry is not None else None
            if batch is None or batch.done():
                return
            with contextlib.suppress(asyncio.CancelledError):
                await batch
            await asyncio.sleep(0)

    async def aclose(self) -> None:
        batches = []
        for entry in self._registry:
            if entry.batch is not None:
                entry.batch.cancel()
                batches.append(entry.batch)
                entry.batch = None
        for batch in batches:
            with contextlib.suppress(asyncio.CancelledError):
                await batch

    async def _run_batch(self, entry: DocumentEntry, tasks: list[GenerationTask]) -> None:
        completed = 0
        aborted = False
        emit("annotations.generate.start", {"document": entry.key, "tasks": len(tasks)})
        try:
            await asyncio.sleep(max(0.0, self._config.defer_seconds))
            for task in tasks:
                if entry.document.dirty:
                    LOGGER.debug("Document %s became dirty; aborting generation batch", entry.key)
                    aborted = True
                    break
                await self._respect_call_interval()
                if await self._generate(entry, task):
                    completed += 1
        finally:
            if entry.batch is asyncio.current_task():
                entry.batch = None
            emit(
                "annotations.generate.end",
                {"document": entry.key, "tasks": len(tasks), "completed": completed, "aborted": aborted},
            )

    async def _generate(self, entry: DocumentEntry, task: GenerationTask) -> bool:
        language = entry.document.language
        LOGGER.debug("Summarizing %s (%d chars)", task.span.name, len(task.code))
        try:
            units = list(await self._summarizer.summarize(task.code, language))
        except Exception as exc:
            LOGGER.warning("Failed to summarize %s in %s: %s", task.span.name, entry.key, exc)
            LOGGER.debug("Summarizer traceback", exc_info=True)
            emit("annotations.generate.failed", {"document": entry.key, "function": task.span.name})
            return False
        finally:
            self._last_call_at = time.monotonic()
        if not units:
            LOGGER.warning("Summarizer returned no units for %s in %s", task.span.name, entry.key)
            emit("annotations.generate.failed", {"document": entry.key, "function": task.span.name})
            return False
        record = FunctionRecord(
            live_code=task.code,
            last_saved_code=task.code,
            start_line=task.span.start_line,
            units=sorted(units, key=lambda unit: unit.line),
        )
        entry.index.put(record)
        self._registry.persist(entry)
        entry.invalidate()
        self._notify(entry)
        return True

    async def _respect_call_interval(self) -> None:
        interval = self._config.min_call_interval
        if interval <= 0 or self._last_call_at is None:
            return
        remaining = interval - (time.monotonic() - self._last_call_at)
        if remaining > 0:
            await asyncio.sleep(remaining)

    def _notify(self, entry: DocumentEntry) -> None:
        callback = self._on_updated
        if callback is None:
            return
        try:
            callback(entry)
        except Exception:  # pragma: no cover - listeners must not break the batch
            LOGGER.debug("Generation update callback failed", exc_info=True)
