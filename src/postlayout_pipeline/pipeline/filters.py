from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from postlayout_pipeline.models import RECORD_STATES, PipelineRecord

DATE_PRESETS = ("all", "today", "yesterday", "this_week")


class FilterOptions(BaseModel):
    search: str = Field(default="")
    # "all" or one of the record states
    status: str = Field(default="all")
    # all / today / yesterday / this_week / YYYY-MM-DD
    date_filter: str = Field(default="all")
    date_from: Optional[date] = Field(default=None)
    date_to: Optional[date] = Field(default=None)

    @field_validator("status")
    @classmethod
    def _known_status(cls, v: str) -> str:
        if v != "all" and v not in RECORD_STATES:
            raise ValueError(f"unknown status filter: {v}")
        return v

    @field_validator("date_filter")
    @classmethod
    def _known_date_filter(cls, v: str) -> str:
        if v not in DATE_PRESETS:
            date.fromisoformat(v)
        return v


@dataclass(frozen=True)
class WorkingSetStats:
    total: int
    by_state: Dict[str, int]
    today: int
    yesterday: int
    this_week: int


def record_date(record: PipelineRecord, today: date) -> date:
    """Import date used by the date filters (falls back to creation date, then today)."""
    if record.imported_at is not None:
        return record.imported_at.date()
    if record.created_at is not None:
        return record.created_at.date()
    return today


def matches_search(record: PipelineRecord, term: str) -> bool:
    needle = term.strip().lower()
    if not needle:
        return True
    return (
        needle in record.outline.lower()
        or needle in record.meta_title.lower()
        or needle in record.keyword.lower()
    )


def matches_date(record: PipelineRecord, options: FilterOptions, today: date) -> bool:
    item_date = record_date(record, today)

    if options.date_from is not None and item_date < options.date_from:
        return False
    if options.date_to is not None and item_date > options.date_to:
        return False

    preset = options.date_filter
    if preset == "all":
        return True
    if preset == "today":
        return item_date == today
    if preset == "yesterday":
        return item_date == today - timedelta(days=1)
    if preset == "this_week":
        return item_date >= today - timedelta(days=7)
    return item_date == date.fromisoformat(preset)


def apply_filters(
    records: Sequence[PipelineRecord], options: FilterOptions, *, now: datetime
) -> List[PipelineRecord]:
    today = now.date()
    return [
        r
        for r in records
        if matches_search(r, options.search)
        and (options.status == "all" or r.state == options.status)
        and matches_date(r, options, today)
    ]


def total_pages(count: int, per_page: int) -> int:
    return math.ceil(count / per_page) if per_page > 0 else 0


def paginate(records: Sequence[PipelineRecord], page: int, per_page: int) -> List[PipelineRecord]:
    """1-based page slice; out-of-range pages are empty."""
    if page < 1 or per_page < 1:
        return []
    start = (page - 1) * per_page
    return list(records[start : start + per_page])


def compute_stats(records: Sequence[PipelineRecord], *, now: datetime) -> WorkingSetStats:
    today = now.date()
    by_state = {state: 0 for state in RECORD_STATES}
    counts = {"today": 0, "yesterday": 0, "this_week": 0}

    for r in records:
        by_state[r.state] += 1
        # records without any timestamp are not counted in the date buckets
        if r.imported_at is None and r.created_at is None:
            continue
        item_date = record_date(r, today)
        if item_date == today:
            counts["today"] += 1
        if item_date == today - timedelta(days=1):
            counts["yesterday"] += 1
        if item_date >= today - timedelta(days=7):
            counts["this_week"] += 1

    return WorkingSetStats(total=len(records), by_state=by_state, **counts)
