from __future__ import annotations

from typing import List, Optional, Sequence


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class SourceError(PipelineError):
    """Import-time failure of a record source."""


class SourceUnavailable(SourceError):
    """The tabular source is unreachable, misconfigured or returned no rows."""


class SourceMalformed(SourceError):
    """The source answered but rows cannot be parsed into the expected columns."""


class ValidationFailed(PipelineError):
    def __init__(self, record_id: str, errors: Sequence[str]) -> None:
        self.record_id = record_id
        self.errors: List[str] = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class GenerationRejected(PipelineError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CreationError(PipelineError):
    """Post creation failed."""


class CreationRejected(CreationError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CreationUnreachable(CreationError):
    """Network failure while talking to the posts API."""


class NoEligibleItems(PipelineError):
    def __init__(self, action: str) -> None:
        super().__init__(f"No eligible items selected for {action}")
        self.action = action


class RecordNotFound(PipelineError):
    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record not found: {record_id}")
        self.record_id = record_id


class RecordNotEligible(PipelineError):
    def __init__(self, record_id: str, state: str, action: str) -> None:
        super().__init__(f"Record {record_id} in state '{state}' is not eligible for {action}")
        self.record_id = record_id
        self.state = state
        self.action = action


__all__ = [
    "CreationError",
    "CreationRejected",
    "CreationUnreachable",
    "GenerationRejected",
    "NoEligibleItems",
    "PipelineError",
    "RecordNotEligible",
    "RecordNotFound",
    "SourceError",
    "SourceMalformed",
    "SourceUnavailable",
    "ValidationFailed",
]
