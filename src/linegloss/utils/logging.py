"""Logging setup shared by the command line and library users."""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path

__all__ = ["setup_logging", "get_logger", "get_log_path"]

_DEFAULT_LOG_DIR = Path.home() / ".linegloss" / "logs"
_LOG_FILE_NAME = "linegloss.log"
_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
# Chatty at DEBUG; only their warnings are interesting.
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")

_configured = False
_log_path: Path | None = None


def setup_logging(
    level: int | str = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    log_file: bool = True,
    max_bytes: int = 512_000,
    backup_count: int = 2,
    force: bool = False,
) -> Path | None:
    """Install a rotating file handler and, optionally, a stderr handler.

    The console handler writes to stderr so command output on stdout stays
    machine-readable. ``LINEGLOSS_LOG_LEVEL`` overrides *level*. Returns the
    log file path, or ``None`` when file logging is disabled.
    """

    global _configured, _log_path
    if _configured and not force:
        return _log_path

    resolved_level = _resolve_level(os.environ.get("LINEGLOSS_LOG_LEVEL") or level)
    handlers: list[logging.Handler] = []
    log_path: Path | None = None

    if log_file:
        target_dir = _resolve_log_dir(log_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        log_path = target_dir / _LOG_FILE_NAME
        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handlers.append(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        handlers.append(console_handler)

    if not handlers:
        handlers.append(logging.NullHandler())
    for handler in handlers:
        handler.setLevel(resolved_level)

    logging.basicConfig(level=resolved_level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, resolved_level))

    _configured = True
    _log_path = log_path
    return log_path


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_log_path() -> Path | None:
    """Return the active log file, if file logging was configured."""

    return _log_path


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get("LINEGLOSS_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()
