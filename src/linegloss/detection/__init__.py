"""Function span detection."""

from .functions import (
    CompositeDetector,
    FunctionDetector,
    FunctionSpan,
    PythonAstDetector,
    RegexDetector,
    default_detector,
    span_ranges,
)

__all__ = [
    "FunctionSpan",
    "FunctionDetector",
    "PythonAstDetector",
    "RegexDetector",
    "CompositeDetector",
    "default_detector",
    "span_ranges",
]
