"""Persistence of per-document annotation records and call graphs."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Protocol

from ..annotations.records import FunctionRecord, records_from_payload, records_to_payload
from ..editor.document_model import DocumentState

__all__ = [
    "RecordStore",
    "JsonRecordStore",
    "InMemoryRecordStore",
    "document_key",
    "DEFAULT_CACHE_DIR_NAME",
]

LOGGER = logging.getLogger(__name__)
DEFAULT_CACHE_DIR_NAME = ".linegloss"
_SUMMARY_SUFFIX = ".summary.json"
_CALL_GRAPH_SUFFIX = ".callgraph.json"


class RecordStore(Protocol):
    """Keyed persistence of annotation record lists."""

    def key_for(self, document: DocumentState) -> str:  # pragma: no cover - protocol
        ...

    def load(self, key: str) -> list[FunctionRecord] | None:  # pragma: no cover - protocol
        ...

    def save(self, key: str, records: list[FunctionRecord]) -> None:  # pragma: no cover - protocol
        ...


def document_key(path: Path | str | None, root: Path | str | None = None, *, fallback: str = "untitled") -> str:
    """Return a readable, filesystem-safe key for a document path relative to *root*."""

    if path is None:
        return _sanitize(fallback) or "untitled"
    target = Path(path)
    relative: str
    if root is not None:
        try:
            relative = target.resolve().relative_to(Path(root).resolve()).as_posix()
        except ValueError:
            relative = target.as_posix()
    else:
        relative = target.as_posix()
    return _sanitize(relative) or "untitled"


def _sanitize(value: str) -> str:
    safe = re.sub(r'[<>:"|?*\\/]', "_", value)
    safe = re.sub(r"\s+", "_", safe)
    safe = re.sub(r"\.+", ".", safe)
    safe = safe.strip(".")
    safe = re.sub(r"_+", "_", safe)
    return safe.strip("_")


class JsonRecordStore:
    """Stores each document's records as a JSON array under ``<root>/<cache_dir_name>``."""

    def __init__(self, root: Path | str, *, cache_dir_name: str = DEFAULT_CACHE_DIR_NAME) -> None:
        self._root = Path(root).expanduser().resolve()
        self._cache_dir = self._root / cache_dir_name

    @property
    def root(self) -> Path:
        return self._root

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def key_for(self, document: DocumentState) -> str:
        return document_key(document.metadata.path, self._root, fallback=document.document_id)

    def path_for(self, key: str) -> Path:
        return self._cache_dir / f"{key}{_SUMMARY_SUFFIX}"

    def load(self, key: str) -> list[FunctionRecord] | None:
        payload = self._read_json(self.path_for(key))
        if payload is None:
            return None
        records = records_from_payload(payload)
        if records is None:
            LOGGER.debug("Summary cache for %s is not a list; ignoring", key)
        return records

    def save(self, key: str, records: list[FunctionRecord]) -> None:
        self._write_json(self.path_for(key), records_to_payload(records))

    def delete(self, key: str) -> None:
        with contextlib.suppress(FileNotFoundError):
            self.path_for(key).unlink()

    def load_call_graph(self, key: str) -> Any | None:
        return self._read_json(self._cache_dir / f"{key}{_CALL_GRAPH_SUFFIX}")

    def save_call_graph(self, key: str, payload: Any) -> None:
        self._write_json(self._cache_dir / f"{key}{_CALL_GRAPH_SUFFIX}", payload)

    def _read_json(self, path: Path) -> Any | None:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            LOGGER.debug("Unable to read cache file %s", path, exc_info=True)
            return None

    def _write_json(self, path: Path, payload: Any) -> None:
        body = json.dumps(payload, indent=2, ensure_ascii=False)
        tmp_path = path.with_suffix(".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(body, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            LOGGER.warning("Unable to write cache file %s: %s", path, exc)
            with contextlib.suppress(OSError):
                tmp_path.unlink()


class InMemoryRecordStore:
    """Dict-backed store; keeps serialized payloads so callers never share record objects."""

    def __init__(self) -> None:
        self._payloads: dict[str, list[dict[str, Any]]] = {}
        self.save_count = 0

    def key_for(self, document: DocumentState) -> str:
        return document_key(document.metadata.path, fallback=document.document_id)

    def load(self, key: str) -> list[FunctionRecord] | None:
        payload = self._payloads.get(key)
        if payload is None:
            return None
        return records_from_payload(json.loads(json.dumps(payload)))

    def save(self, key: str, records: list[FunctionRecord]) -> None:
        self._payloads[key] = records_to_payload(records)
        self.save_count += 1

    def keys(self) -> list[str]:
        return list(self._payloads)
