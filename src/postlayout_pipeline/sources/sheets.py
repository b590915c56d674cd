from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from postlayout_pipeline.config import SheetsConfig
from postlayout_pipeline.errors import SourceMalformed, SourceUnavailable
from postlayout_pipeline.models import PipelineRecord
from postlayout_pipeline.retry_utils import (
    TRANSIENT_HTTP_STATUS,
    RetryableHttpStatus,
    RetryConfig,
    is_transient_error,
    retry_call,
)
from postlayout_pipeline.sources.provider import RecordSource
from postlayout_pipeline.sources.rows import IdStrategy, frame_to_records, rows_to_frame

logger = logging.getLogger(__name__)


class SheetsSource(RecordSource):
    """Reads content briefs from the Google Sheets v4 values endpoint.

    Endpoint: {api_url}/{sheet_id}/values/{range}?key={api_key}

    Expected payload: {"values": [[outline, meta_title, meta_description,
    keyword, status, content], ...]} (row-major, strings).
    """

    name = "sheets"

    def __init__(
        self,
        config: SheetsConfig,
        *,
        id_strategy: IdStrategy = "content",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self.id_strategy = id_strategy
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def values_url(self) -> str:
        base = self.config.api_url.rstrip("/")
        return f"{base}/{self.config.sheet_id}/values/{quote(self.config.range, safe='!:')}"

    def fetch_values(self) -> List[Any]:
        if not self.config.api_key or not self.config.sheet_id:
            raise SourceUnavailable("Google Sheets API key or sheet id is missing")

        url = self.values_url()
        params: Dict[str, Any] = {"key": self.config.api_key}

        def _do_request() -> requests.Response:
            timeout = (min(5.0, float(self.config.timeout_s)), float(self.config.timeout_s))
            resp = requests.get(url, params=params, timeout=timeout)

            if resp.status_code in TRANSIENT_HTTP_STATUS:
                raise RetryableHttpStatus(resp.status_code, resp.text)
            if resp.status_code >= 400:
                raise SourceUnavailable(f"Google Sheets API error: HTTP {resp.status_code}: {resp.text[:200]}")
            return resp

        def _on_retry(attempt: int, exc: Exception, delay_s: float) -> None:
            logger.warning(f"Google Sheets fetch attempt {attempt} failed ({exc}); retrying in {delay_s:.1f}s")

        try:
            resp = retry_call(
                _do_request,
                cfg=RetryConfig(max_attempts=self.config.max_attempts, base_delay_s=0.5, max_delay_s=8.0),
                should_retry=is_transient_error,
                on_retry=_on_retry,
            )
        except (RetryableHttpStatus, requests.RequestException) as exc:
            raise SourceUnavailable(f"Google Sheets request failed: {type(exc).__name__}: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            raise SourceMalformed(f"Google Sheets returned invalid JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise SourceMalformed("Google Sheets response must be a JSON object")

        values = payload.get("values")
        if not values:
            raise SourceUnavailable("No data found in the Google Sheet")
        if not isinstance(values, list):
            raise SourceMalformed("Google Sheets 'values' is not a list")

        return values

    def fetch_records(self) -> List[PipelineRecord]:
        values = self.fetch_values()
        frame = rows_to_frame(values)
        if frame.empty:
            raise SourceUnavailable("Google Sheet contains only blank rows")

        records = frame_to_records(frame, id_strategy=self.id_strategy, imported_at=self.clock())
        logger.info(f"Imported {len(records)} records from sheet {self.config.sheet_id} ({len(values)} raw rows)")
        return records
