"""Pipeline core (classify -> validate -> orchestrate).

The orchestrator is imported from `postlayout_pipeline.pipeline.orchestrator`.
"""

from postlayout_pipeline.pipeline.classify import classify
from postlayout_pipeline.pipeline.filters import FilterOptions, WorkingSetStats
from postlayout_pipeline.pipeline.validate import ValidationResult, ensure_valid, validate_record

__all__ = [
    "FilterOptions",
    "ValidationResult",
    "WorkingSetStats",
    "classify",
    "ensure_valid",
    "validate_record",
]
