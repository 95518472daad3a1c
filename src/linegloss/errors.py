"""Exception types raised by linegloss."""

from __future__ import annotations

__all__ = ["LineglossError", "SummarizationError", "ConfigurationError"]


class LineglossError(Exception):
    """Base class for errors raised by linegloss."""


class SummarizationError(LineglossError):
    """The summarization service failed or returned nothing usable."""


class ConfigurationError(LineglossError):
    """Settings are missing something a command needs."""
