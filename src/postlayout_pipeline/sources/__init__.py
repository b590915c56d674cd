"""Record sources (Google Sheets + canned fixture fallback)."""

from postlayout_pipeline.sources.fixtures import SAMPLE_LAYOUTS, FixtureSource
from postlayout_pipeline.sources.provider import RecordSource
from postlayout_pipeline.sources.rows import SHEET_COLUMNS, frame_to_records, rows_to_frame
from postlayout_pipeline.sources.sheets import SheetsSource

__all__ = [
    "FixtureSource",
    "RecordSource",
    "SAMPLE_LAYOUTS",
    "SHEET_COLUMNS",
    "SheetsSource",
    "frame_to_records",
    "rows_to_frame",
]
