"""CSV export of the working set."""

from postlayout_pipeline.export.csv_export import CSV_MIME_TYPE, EXPORT_COLUMNS, export_csv, export_filename

__all__ = ["CSV_MIME_TYPE", "EXPORT_COLUMNS", "export_csv", "export_filename"]
