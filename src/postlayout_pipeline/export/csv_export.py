from __future__ import annotations

import csv
from datetime import date, datetime
from typing import List, Optional, Sequence

import pandas as pd

from postlayout_pipeline.models import PipelineRecord

EXPORT_COLUMNS: List[str] = [
    "id",
    "meta_title",
    "meta_description",
    "keyword",
    "state",
    "created_at",
    "external_post_id",
]

CSV_MIME_TYPE = "text/csv"


def export_filename(today: date, prefix: str = "post-layouts") -> str:
    return f"{prefix}-{today.isoformat()}.csv"


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value is not None else ""


def export_csv(records: Sequence[PipelineRecord]) -> bytes:
    """Serialize records to UTF-8 CSV.

    Every field is quoted, so commas, quotes and CR/LF survive a re-parse;
    embedded quotes are doubled. Missing values are written as empty fields.
    """

    rows = [
        {
            "id": r.id,
            "meta_title": r.meta_title,
            "meta_description": r.meta_description,
            "keyword": r.keyword,
            "state": r.state,
            "created_at": _iso(r.created_at),
            "external_post_id": r.external_post_id or "",
        }
        for r in records
    ]
    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
    text = df.to_csv(
        index=False,
        quoting=csv.QUOTE_ALL,
        doublequote=True,
        lineterminator="\n",
        na_rep="",
    )
    return text.encode("utf-8")
