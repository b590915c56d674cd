from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Any, Dict, List, Literal, Sequence

import pandas as pd

from postlayout_pipeline.errors import SourceMalformed
from postlayout_pipeline.models import PipelineRecord
from postlayout_pipeline.pipeline.classify import classify

# Fixed column order of the brief sheet (A..F).
SHEET_COLUMNS: List[str] = ["outline", "meta_title", "meta_description", "keyword", "status", "content"]

IdStrategy = Literal["content", "position"]


def rows_to_frame(values: Sequence[Any]) -> pd.DataFrame:
    """Normalize raw sheet values to a frame with SHEET_COLUMNS + row_number.

    The Sheets API omits trailing empty cells, so rows are padded; extra
    columns beyond F are ignored. Rows with a blank outline are dropped.
    row_number is the 1-based position in the fetched range (before dropping).
    """

    padded: List[List[str]] = []
    for idx, row in enumerate(values):
        if not isinstance(row, (list, tuple)):
            raise SourceMalformed(f"row {idx + 1} is not an array: {type(row).__name__}")
        cells = ["" if c is None else str(c) for c in row[: len(SHEET_COLUMNS)]]
        cells.extend([""] * (len(SHEET_COLUMNS) - len(cells)))
        padded.append(cells)

    df = pd.DataFrame(padded, columns=SHEET_COLUMNS)
    df["row_number"] = range(1, len(df) + 1)

    if df.empty:
        return df

    return df[df["outline"].str.strip() != ""]


def content_key(outline: str, keyword: str) -> str:
    digest = hashlib.sha1(f"{outline.strip().lower()}|{keyword.strip().lower()}".encode("utf-8"))
    return f"sheet_{digest.hexdigest()[:12]}"


def assign_ids(df: pd.DataFrame, strategy: IdStrategy) -> List[str]:
    if strategy == "position":
        return [f"sheet_{n}" for n in df["row_number"]]

    seen: Dict[str, int] = {}
    ids: List[str] = []
    for outline, keyword in zip(df["outline"], df["keyword"]):
        key = content_key(outline, keyword)
        seen[key] = seen.get(key, 0) + 1
        ids.append(key if seen[key] == 1 else f"{key}-{seen[key]}")
    return ids


def frame_to_records(df: pd.DataFrame, *, id_strategy: IdStrategy, imported_at: datetime) -> List[PipelineRecord]:
    if df.empty:
        return []

    records: List[PipelineRecord] = []
    for record_id, row in zip(assign_ids(df, id_strategy), df.itertuples(index=False)):
        records.append(
            PipelineRecord(
                id=record_id,
                outline=row.outline,
                meta_title=row.meta_title,
                meta_description=row.meta_description,
                keyword=row.keyword,
                content=row.content,
                state=classify(row.status, row.content),
                imported_at=imported_at,
                # posts API defaults
                title=row.meta_title,
                body=row.content,
                excerpt=row.meta_description,
            )
        )
    return records
