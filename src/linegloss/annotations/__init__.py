"""Incremental annotation cache: reconciliation, live line-shift and generation."""

from .line_shift import apply_changes
from .provider import AnnotationProvider
from .reconciler import (
    Decision,
    GenerationTask,
    ReconcileResult,
    RenderEntry,
    decide,
    function_slices,
    reconcile,
)
from .records import (
    AnnotationUnit,
    FunctionRecord,
    RecordIndex,
    RecordState,
    build_units,
    classify,
)
from .registry import DocumentEntry, DocumentRegistry
from .scheduler import GenerationScheduler, SchedulerConfig

__all__ = [
    "AnnotationUnit",
    "FunctionRecord",
    "RecordIndex",
    "RecordState",
    "build_units",
    "classify",
    "Decision",
    "GenerationTask",
    "ReconcileResult",
    "RenderEntry",
    "decide",
    "function_slices",
    "reconcile",
    "apply_changes",
    "DocumentEntry",
    "DocumentRegistry",
    "GenerationScheduler",
    "SchedulerConfig",
    "AnnotationProvider",
]
