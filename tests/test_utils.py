"""Tests for the logging helpers."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from linegloss.utils import logging as logging_utils


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    saved_level, saved_handlers = root.level, list(root.handlers)
    yield
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    logging_utils._configured = False
    logging_utils._log_path = None


def test_setup_logging_writes_rotating_file(tmp_path: Path) -> None:
    log_path = logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console=False, force=True)

    logging_utils.get_logger("linegloss.test").info("hello from tests")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert log_path == tmp_path / "linegloss.log"
    assert logging_utils.get_log_path() == log_path
    assert "hello from tests" in log_path.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_setup_logging_honours_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LINEGLOSS_LOG_DIR", str(tmp_path / "env-logs"))
    monkeypatch.setenv("LINEGLOSS_LOG_LEVEL", "error")

    log_path = logging_utils.setup_logging(console=False, force=True)

    assert log_path is not None and log_path.parent == tmp_path / "env-logs"
    assert logging.getLogger().level == logging.ERROR
    assert logging_utils.setup_logging() == log_path


def test_console_only_logging_has_no_file(capsys: pytest.CaptureFixture[str]) -> None:
    assert logging_utils.setup_logging("warning", log_file=False, force=True) is None

    logging_utils.get_logger("linegloss.test").warning("careful")

    assert "WARNING linegloss.test: careful" in capsys.readouterr().err
    assert logging_utils.get_log_path() is None
