from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from postlayout_pipeline.config import PostsApiConfig
from postlayout_pipeline.errors import CreationRejected, CreationUnreachable
from postlayout_pipeline.models import PipelineRecord
from postlayout_pipeline.retry_utils import RetryableHttpStatus, RetryConfig, is_rate_limited, retry_call

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreationResult:
    external_post_id: str
    slug: Optional[str] = None
    status: Optional[str] = None


def generate_slug(keyword: str) -> str:
    slug = keyword.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip()


def build_post_payload(record: PipelineRecord) -> Dict[str, Any]:
    """Map a record onto the CreatePostDto schema of the posts API.

    Brief fields fill the gaps the passthrough leaves: title <- meta_title,
    body <- content <- outline, excerpt <- meta_description. The SEO fields are
    folded into seoMeta; passthrough seo_meta keys win. Unset values are omitted.
    """

    seo_meta: Dict[str, Any] = {
        "meta_title": record.meta_title,
        "meta_description": record.meta_description,
        "focus_keyword": record.keyword,
    }
    seo_meta.update(record.seo_meta or {})

    payload: Dict[str, Any] = {
        "title": record.title or record.meta_title,
        "slug": record.slug or generate_slug(record.keyword),
        "body": record.body or record.content or record.outline,
        "excerpt": record.excerpt or record.meta_description,
        "status": "draft",
        "type": record.type or "post",
        "authorId": record.author_id,
        "authorName": record.author_name,
        "destinationId": record.destination_id,
        "destinationName": record.destination_name,
        "featuredImageUrl": record.featured_image_url,
        "featuredImageId": record.featured_image_id,
        "tagIds": record.tag_ids,
        "categoryIds": record.category_ids,
        "publishAt": record.publish_at,
        "canonicalUrl": record.canonical_url,
        "metaRobots": record.meta_robots,
        "seoMeta": seo_meta,
        "schemaMarkup": record.schema_markup,
        "structuredData": record.structured_data,
    }
    return {k: v for k, v in payload.items() if v is not None}


class PostCreationClient:
    """Creates draft posts through the CMS REST API (POST {base_url}/v1/Posts)."""

    def __init__(self, config: PostsApiConfig) -> None:
        self.config = config

    def endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/v1/Posts"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.access_token:
            headers["Authorization"] = f"Bearer {self.config.access_token}"
        return headers

    def create_post(self, record: PipelineRecord) -> CreationResult:
        url = self.endpoint()
        payload = build_post_payload(record)

        def _do_request() -> requests.Response:
            timeout = (min(5.0, float(self.config.timeout_s)), float(self.config.timeout_s))
            resp = requests.post(url, json=payload, headers=self._headers(), timeout=timeout)
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
            raise CreationRejected("Posts API rate limited (HTTP 429)", status_code=429) from exc
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise CreationUnreachable(f"Posts API unreachable: {type(exc).__name__}: {exc}") from exc
        except requests.RequestException as exc:
            raise CreationUnreachable(f"Posts API request failed: {type(exc).__name__}: {exc}") from exc

        data = _json_or_none(resp)

        if resp.status_code >= 400:
            message = _server_message(data) or f"Failed to create post (HTTP {resp.status_code})"
            logger.error(f"Post creation for {record.id} rejected: HTTP {resp.status_code}: {message}")
            raise CreationRejected(message, status_code=resp.status_code)

        if not isinstance(data, dict):
            raise CreationRejected("Posts API returned an unexpected response body", status_code=resp.status_code)
        if data.get("success") is False:
            raise CreationRejected(_server_message(data) or "Failed to create post", status_code=resp.status_code)

        created = data.get("data")
        post_id = created.get("id") if isinstance(created, dict) else None
        if not post_id:
            raise CreationRejected("Posts API response is missing data.id", status_code=resp.status_code)

        return CreationResult(
            external_post_id=str(post_id),
            slug=created.get("slug"),
            status=created.get("status"),
        )


def _json_or_none(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _server_message(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        message = data.get("message")
        if isinstance(message, str) and message.strip():
            return message
    return None
