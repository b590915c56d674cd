from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from postlayout_pipeline.config import GenerationConfig
from postlayout_pipeline.errors import GenerationRejected
from postlayout_pipeline.generation.provider import GenerationClient, GenerationResult
from postlayout_pipeline.models import PipelineRecord
from postlayout_pipeline.retry_utils import RetryableHttpStatus, RetryConfig, is_rate_limited, retry_call

logger = logging.getLogger(__name__)


class WebhookGenerationClient(GenerationClient):
    """Triggers the n8n content generation workflow over its webhook."""

    name = "webhook"

    def __init__(self, config: GenerationConfig, *, sheet_id: Optional[str] = None) -> None:
        self.config = config
        self.sheet_id = sheet_id

    def endpoint(self) -> str:
        if not self.config.webhook_url:
            raise GenerationRejected("n8n webhook URL is not configured")
        return f"{self.config.webhook_url.rstrip('/')}/webhook/generate-content"

    def generate(self, record: PipelineRecord) -> GenerationResult:
        payload: Dict[str, Any] = {
            "post_layout_id": record.id,
            "sheet_id": self.sheet_id,
            "outline": record.outline,
            "keyword": record.keyword,
            "meta_title": record.meta_title,
            "meta_description": record.meta_description,
        }
        return self._post(payload)

    def trigger(self, record: PipelineRecord, post_id: str) -> GenerationResult:
        payload: Dict[str, Any] = {
            "post_id": post_id,
            "outline": record.outline,
            "keyword": record.keyword,
            "meta_title": record.meta_title,
            "content_source": record.content or None,
            "webhook_url": self.config.callback_url,
        }
        return self._post(payload)

    def _post(self, payload: Dict[str, Any]) -> GenerationResult:
        url = self.endpoint()
        body = {k: v for k, v in payload.items() if v is not None}

        def _do_request() -> requests.Response:
            timeout = (min(5.0, float(self.config.timeout_s)), float(self.config.timeout_s))
            resp = requests.post(url, json=body, timeout=timeout)
            if resp.status_code == 429:
                raise RetryableHttpStatus(resp.status_code, resp.text)
            return resp

        try:
            resp = retry_call(
                _do_request,
                cfg=RetryConfig(max_attempts=self.config.max_attempts, base_delay_s=1.0, max_delay_s=8.0),
                should_retry=is_rate_limited,
            )
        except RetryableHttpStatus as exc:
            raise GenerationRejected("Content generation rate limited (HTTP 429)", status_code=429) from exc
        except requests.RequestException as exc:
            raise GenerationRejected(f"Content generation request failed: {type(exc).__name__}: {exc}") from exc

        if resp.status_code >= 400:
            logger.error(f"n8n webhook returned HTTP {resp.status_code}: {resp.text[:200]}")
            raise GenerationRejected(
                f"Failed to trigger content generation (HTTP {resp.status_code})",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise GenerationRejected(f"Content generation returned invalid JSON: {exc}") from exc

        if not isinstance(data, dict) or not data.get("success"):
            message = data.get("message") if isinstance(data, dict) else None
            raise GenerationRejected(message or "Content generation was not accepted")

        trigger_id = data.get("trigger_id") or data.get("execution_id")
        if not trigger_id:
            raise GenerationRejected("Content generation response is missing trigger_id")

        content = data.get("content")
        if content is not None and not isinstance(content, str):
            raise GenerationRejected(f"Content generation returned non-text content: {type(content).__name__}")

        return GenerationResult(
            trigger_id=str(trigger_id),
            estimated_completion=data.get("estimated_completion"),
            content=content,
            message=data.get("message"),
        )
