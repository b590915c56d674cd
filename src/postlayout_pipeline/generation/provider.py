from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from postlayout_pipeline.models import PipelineRecord


@dataclass(frozen=True)
class GenerationResult:
    trigger_id: str
    estimated_completion: Optional[str] = None
    content: Optional[str] = None
    message: Optional[str] = None


class GenerationClient(ABC):
    """Starts content generation for a brief.

    Both methods raise GenerationRejected when the workflow does not accept
    the request.
    """

    name: str = "generator"

    @abstractmethod
    def generate(self, record: PipelineRecord) -> GenerationResult:
        """Generate body content for a brief that has none yet."""

    @abstractmethod
    def trigger(self, record: PipelineRecord, post_id: str) -> GenerationResult:
        """Start generation for an already created post (follow-up after create)."""
