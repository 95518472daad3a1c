"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from linegloss.services import telemetry


SAMPLE_JS = (
    "function foo(a) {\n"
    "  return a + 1;\n"
    "}\n"
    "\n"
    "function bar(b) {\n"
    "  return foo(b) * 2;\n"
    "}\n"
)


@pytest.fixture
def sample_js() -> str:
    return SAMPLE_JS


@pytest.fixture
def telemetry_events():
    """Capture every telemetry event emitted during a test."""

    with telemetry.capture() as captured:
        yield captured


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in (
        "LINEGLOSS_API_KEY",
        "LINEGLOSS_BASE_URL",
        "LINEGLOSS_MODEL",
        "LINEGLOSS_DEBUG",
        "LINEGLOSS_DEBUG_LOGGING",
        "LINEGLOSS_RENDER_PENDING",
        "LINEGLOSS_REQUEST_TIMEOUT",
        "LINEGLOSS_TEMPERATURE",
        "LINEGLOSS_MAX_RETRIES",
        "LINEGLOSS_SETTINGS_PATH",
        "LINEGLOSS_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LINEGLOSS_LOG_DIR", str(tmp_path / "logs"))
