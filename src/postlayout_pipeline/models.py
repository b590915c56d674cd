from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Literal, Optional

from pydantic import BaseModel, Field

RecordState = Literal["pending", "need_generate", "ready", "generating", "created", "error"]

RECORD_STATES: tuple[str, ...] = ("pending", "need_generate", "ready", "generating", "created", "error")

CREATE_ELIGIBLE: FrozenSet[str] = frozenset({"pending", "ready"})
GENERATE_ELIGIBLE: FrozenSet[str] = frozenset({"need_generate"})


class PipelineRecord(BaseModel):
    """One content brief (post layout) moving through import -> generation -> creation.

    The sheet columns are outline/meta_title/meta_description/keyword/status/content.
    Everything below `created_at` is passthrough for the posts API and is never
    interpreted by the pipeline itself.
    """

    id: str
    outline: str = Field(default="")
    meta_title: str = Field(default="")
    meta_description: str = Field(default="")
    keyword: str = Field(default="")
    content: str = Field(default="")

    state: RecordState = Field(default="pending")

    external_post_id: Optional[str] = Field(default=None)
    generation_trigger_id: Optional[str] = Field(default=None)
    # Only meaningful while state == "error".
    error_message: Optional[str] = Field(default=None)

    imported_at: Optional[datetime] = Field(default=None)
    created_at: Optional[datetime] = Field(default=None)

    # posts API passthrough
    title: Optional[str] = Field(default=None)
    slug: Optional[str] = Field(default=None)
    excerpt: Optional[str] = Field(default=None)
    body: Optional[str] = Field(default=None)
    type: Optional[str] = Field(default=None)
    author_id: Optional[str] = Field(default=None)
    author_name: Optional[str] = Field(default=None)
    destination_id: Optional[str] = Field(default=None)
    destination_name: Optional[str] = Field(default=None)
    featured_image_id: Optional[str] = Field(default=None)
    featured_image_url: Optional[str] = Field(default=None)
    tag_ids: Optional[List[str]] = Field(default=None)
    category_ids: Optional[List[str]] = Field(default=None)
    publish_at: Optional[str] = Field(default=None)
    canonical_url: Optional[str] = Field(default=None)
    meta_robots: Optional[str] = Field(default=None)
    seo_meta: Optional[Dict[str, Any]] = Field(default=None)
    schema_markup: Optional[Dict[str, Any]] = Field(default=None)
    structured_data: Optional[Dict[str, Any]] = Field(default=None)

    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())


@dataclass(frozen=True)
class BulkError:
    record_id: str
    error: str


@dataclass(frozen=True)
class BulkOutcome:
    """Aggregate result of one bulk create/generate invocation.

    successful + failed + skipped == total. skipped is only non-zero when the
    batch was cancelled between items.
    """

    action: str
    total: int
    successful: int
    failed: int
    errors: List[BulkError] = field(default_factory=list)
    skipped: int = 0
    cancelled: bool = False


__all__ = [
    "BulkError",
    "BulkOutcome",
    "CREATE_ELIGIBLE",
    "GENERATE_ELIGIBLE",
    "PipelineRecord",
    "RECORD_STATES",
    "RecordState",
]
