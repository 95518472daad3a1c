"""Command line entry point for linegloss."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, TextIO

from .ai.client import AIClient, ClientSettings
from .ai.summarizer import SemanticUnitSummarizer
from .analysis.callgraph import call_graph_to_payload, compute_call_graph
from .annotations.provider import AnnotationProvider
from .annotations.reconciler import RenderEntry
from .detection.functions import default_detector, span_ranges
from .editor.document_model import DocumentState
from .errors import ConfigurationError, LineglossError
from .services.settings import Settings, SettingsStore, redact_secret
from .storage.record_store import JsonRecordStore
from .utils import logging as logging_utils

_LOGGER = logging_utils.get_logger(__name__)
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure structured logging for the command line."""

    level = logging.DEBUG if debug else logging.WARNING
    logging_utils.setup_logging(level, console=debug, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def build_summarizer(settings: Settings) -> tuple[SemanticUnitSummarizer, AIClient]:
    """Create the model-backed summarizer; requires an API key."""

    if not settings.api_key:
        raise ConfigurationError(
            "No API key configured. Set LINEGLOSS_API_KEY or add one to the settings file."
        )
    _LOGGER.debug(
        "Using model %s at %s (api key %s)",
        settings.model,
        settings.base_url,
        redact_secret(settings.api_key),
    )
    client = AIClient(ClientSettings.from_settings(settings))
    return SemanticUnitSummarizer(client, comment_prefix=settings.comment_prefix), client


def main(argv: Sequence[str] | None = None, *, stdout: TextIO | None = None) -> int:
    """Entry point invoked by the `linegloss` console script."""

    args = _parse_cli_args(argv)
    out = stdout or sys.stdout

    debug = bool(args.debug) or _env_flag("LINEGLOSS_DEBUG")
    configure_logging(debug)

    settings_path = args.settings or os.environ.get("LINEGLOSS_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings = load_settings(resolved_path)
    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    handler = _COMMANDS[args.command]
    try:
        return handler(args, settings, out)
    except FileNotFoundError as exc:
        print(f"File not found: {exc.filename}", file=sys.stderr)
    except UnicodeDecodeError as exc:
        print(f"Cannot read {args.file}: {exc.reason}", file=sys.stderr)
    except LineglossError as exc:
        print(str(exc), file=sys.stderr)
    return 1


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------
def run_functions(args: argparse.Namespace, settings: Settings, out: TextIO) -> int:
    document = _open_document(args.file)
    for span in default_detector().detect(document):
        print(f"{span.name} (line {span.start_line + 1})", file=out)
    return 0


def run_annotate(args: argparse.Namespace, settings: Settings, out: TextIO) -> int:
    document = _open_document(args.file)
    summarizer, client = build_summarizer(settings)
    store = JsonRecordStore(_resolve_root(args.root, document), cache_dir_name=settings.cache_dir_name)
    provider = AnnotationProvider(
        detector=default_detector(),
        store=store,
        summarizer=summarizer,
        settings=settings,
    )
    render = asyncio.run(_annotate(provider, client, document))
    out.write(format_annotated(document, render, prefix=settings.comment_prefix))
    return 0


def run_summarize(args: argparse.Namespace, settings: Settings, out: TextIO) -> int:
    document = _open_document(args.file)
    target = args.line - 1
    if target < 0 or target >= document.line_count:
        raise LineglossError(f"Line {args.line} is outside {args.file} ({document.line_count} lines)")
    spans = default_detector().detect(document)
    containing = None
    for span, next_start in span_ranges(spans, document.line_count):
        if span.start_line <= target < next_start:
            containing = (span, next_start)
    if containing is None:
        raise LineglossError(f"No function found at line {args.line}")
    span, next_start = containing
    summarizer, client = build_summarizer(settings)
    code = document.slice_lines(span.start_line, next_start)
    summary = asyncio.run(_summarize(summarizer, client, code, document.language))
    print(f"{span.name} (line {span.start_line + 1})", file=out)
    print(summary, file=out)
    return 0


def run_callgraph(args: argparse.Namespace, settings: Settings, out: TextIO) -> int:
    document = _open_document(args.file)
    entries = compute_call_graph(document, default_detector().detect(document))
    store = JsonRecordStore(_resolve_root(args.root, document), cache_dir_name=settings.cache_dir_name)
    payload = call_graph_to_payload(entries)
    store.save_call_graph(store.key_for(document), payload)
    json.dump(payload, out, indent=2)
    out.write("\n")
    return 0


_COMMANDS = {
    "functions": run_functions,
    "annotate": run_annotate,
    "summarize": run_summarize,
    "callgraph": run_callgraph,
}


def format_annotated(document: DocumentState, render: Sequence[RenderEntry], *, prefix: str = "# >") -> str:
    """Return the document text with each annotation placed above its line."""

    by_line: dict[int, list[RenderEntry]] = {}
    for entry in render:
        by_line.setdefault(entry.line, []).append(entry)
    lines: list[str] = []
    for index in range(document.line_count):
        source = document.line_text(index)
        indent = source[: len(source) - len(source.lstrip())]
        for entry in by_line.get(index, []):
            lines.append(f"{indent}{prefix} {entry.text}")
        lines.append(source)
    rendered = "\n".join(lines)
    return rendered if rendered.endswith("\n") else rendered + "\n"


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
async def _annotate(
    provider: AnnotationProvider,
    client: AIClient,
    document: DocumentState,
) -> list[RenderEntry]:
    try:
        provider.provide_annotations(document)
        await provider.scheduler.wait_idle(document.document_id)
        return provider.provide_annotations(document)
    finally:
        await provider.aclose()
        await client.aclose()


async def _summarize(
    summarizer: SemanticUnitSummarizer,
    client: AIClient,
    code: str,
    language: str,
) -> str:
    try:
        return await summarizer.summarize_function(code, language)
    finally:
        await client.aclose()


def _open_document(raw_path: str) -> DocumentState:
    return DocumentState.from_path(Path(raw_path).expanduser())


def _resolve_root(raw_root: str | None, document: DocumentState) -> Path:
    if raw_root:
        return Path(raw_root).expanduser()
    path = document.metadata.path
    return path.parent if path is not None else Path.cwd()


def _env_flag(name: str) -> bool:
    value = os.environ.get(name)
    return value is not None and value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="linegloss",
        description="Annotate source files with cached, line-level summaries.",
    )
    parser.add_argument(
        "--settings",
        metavar="PATH",
        help="Override the default ~/.linegloss/settings.json path.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging on the console.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    functions = subparsers.add_parser("functions", help="List the functions detected in FILE.")
    functions.add_argument("file", metavar="FILE")

    annotate = subparsers.add_parser("annotate", help="Print FILE with annotations above their lines.")
    annotate.add_argument("file", metavar="FILE")
    annotate.add_argument("--root", metavar="DIR", help="Directory holding the annotation cache.")

    summarize = subparsers.add_parser("summarize", help="Summarize the function containing a line.")
    summarize.add_argument("file", metavar="FILE")
    summarize.add_argument("--line", type=int, required=True, help="1-based line number.")

    callgraph = subparsers.add_parser("callgraph", help="Compute and store the call graph of FILE.")
    callgraph.add_argument("file", metavar="FILE")
    callgraph.add_argument("--root", metavar="DIR", help="Directory holding the annotation cache.")

    return parser.parse_args(argv)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
