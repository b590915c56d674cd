from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from postlayout_pipeline.errors import ValidationFailed
from postlayout_pipeline.models import PipelineRecord

META_TITLE_MAX = 60
META_DESCRIPTION_MAX = 160


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def validate_record(record: PipelineRecord) -> ValidationResult:
    """Check a record before it may be submitted to the posts API.

    All violations are collected so the caller can show a complete list.
    """

    errors: List[str] = []

    if not record.meta_title.strip():
        errors.append("Meta title is required")
    if not record.meta_description.strip():
        errors.append("Meta description is required")
    if not record.keyword.strip():
        errors.append("Keyword is required")
    if not record.outline.strip():
        errors.append("Outline is required")

    if len(record.meta_title) > META_TITLE_MAX:
        errors.append(f"Meta title should be under {META_TITLE_MAX} characters")
    if len(record.meta_description) > META_DESCRIPTION_MAX:
        errors.append(f"Meta description should be under {META_DESCRIPTION_MAX} characters")

    return ValidationResult(is_valid=not errors, errors=errors)


def ensure_valid(record: PipelineRecord) -> None:
    result = validate_record(record)
    if not result.is_valid:
        raise ValidationFailed(record.id, result.errors)
