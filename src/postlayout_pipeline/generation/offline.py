from __future__ import annotations

import hashlib
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from postlayout_pipeline.generation.provider import GenerationClient, GenerationResult
from postlayout_pipeline.models import PipelineRecord

ESTIMATED_COMPLETION = timedelta(minutes=3)


def render_placeholder(record: PipelineRecord) -> str:
    """Deterministic draft body built from the brief fields."""

    intro = record.outline[:200]
    return f"""# {record.meta_title}

{record.meta_description}

## Introduction

{intro}...

## Main points

Based on the outline "{record.outline}", this article covers:

1. **First key point**
   - Detail 1
   - Detail 2
   - Detail 3

2. **Second key point**
   - Analysis A
   - Analysis B
   - Analysis C

## Conclusion

For the keyword "{record.keyword}", this article gives readers a complete and useful overview.

*Drafted automatically from the outline; an editor will review it.*"""


class OfflineGenerationClient(GenerationClient):
    """Synthesizes placeholder content locally after a simulated delay."""

    name = "offline"

    def __init__(self, *, delay_s: float = 0.0, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.delay_s = delay_s
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _result(self, seed: str, record: PipelineRecord) -> GenerationResult:
        if self.delay_s > 0:
            time.sleep(self.delay_s)

        trigger_id = "gen_" + hashlib.sha1(seed.encode("utf-8")).hexdigest()[:10]
        return GenerationResult(
            trigger_id=trigger_id,
            estimated_completion=(self.clock() + ESTIMATED_COMPLETION).isoformat(),
            content=render_placeholder(record),
        )

    def generate(self, record: PipelineRecord) -> GenerationResult:
        return self._result(f"layout:{record.id}", record)

    def trigger(self, record: PipelineRecord, post_id: str) -> GenerationResult:
        return self._result(f"post:{post_id}", record)
