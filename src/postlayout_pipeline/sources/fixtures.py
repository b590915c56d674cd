from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from postlayout_pipeline.models import PipelineRecord
from postlayout_pipeline.pipeline.classify import classify
from postlayout_pipeline.sources.provider import RecordSource

logger = logging.getLogger(__name__)

# Canned briefs used when the sheet cannot be read (and for offline runs).
SAMPLE_LAYOUTS: List[Dict[str, Any]] = [
    {
        "id": "gs_1",
        "outline": "Comprehensive Guide to Digital Marketing in 2024: Strategies, Tools, and Best Practices",
        "meta_title": "Digital Marketing Guide 2024: Complete Strategy & Tools",
        "meta_description": (
            "Master digital marketing with our comprehensive 2024 guide covering SEO, social media, "
            "PPC, content marketing, and analytics tools."
        ),
        "keyword": "digital marketing guide 2024",
        "status": "ready",
        "content": "Digital marketing has evolved dramatically...",
    },
    {
        "id": "gs_2",
        "outline": "The Ultimate Travel Photography Tips: Capturing Perfect Moments Around the World",
        "meta_title": "Travel Photography Tips: Capture Perfect Moments Worldwide",
        "meta_description": (
            "Learn professional travel photography techniques, equipment recommendations, and "
            "composition tips to capture stunning photos on your adventures."
        ),
        "keyword": "travel photography tips",
        "status": "ready",
        "content": "Travel photography combines technical skill...",
    },
    {
        "id": "gs_3",
        "outline": "Sustainable Living: 50 Simple Ways to Reduce Your Environmental Impact",
        "meta_title": "Sustainable Living: 50 Easy Ways to Go Green in 2024",
        "meta_description": (
            "Discover 50 practical and affordable ways to live sustainably, reduce waste, and "
            "minimize your environmental footprint."
        ),
        "keyword": "sustainable living tips",
        "status": "pending",
        "content": "Sustainable living is not just a trend...",
    },
    {
        "id": "gs_4",
        "outline": "Remote Work Productivity: Tools, Tips, and Strategies for Success",
        "meta_title": "Remote Work Productivity: Essential Tools & Strategies 2024",
        "meta_description": (
            "Boost your remote work productivity with proven tools, time management techniques, "
            "and workspace optimization strategies."
        ),
        "keyword": "remote work productivity",
        "status": "",
        "content": "",
    },
    {
        "id": "gs_5",
        "outline": "Healthy Meal Prep: 30 Quick and Nutritious Recipes for Busy Professionals",
        "meta_title": "Healthy Meal Prep: 30 Quick Recipes for Busy Professionals",
        "meta_description": (
            "Save time and eat healthy with 30 meal prep recipes designed for busy professionals. "
            "Includes shopping lists and nutrition info."
        ),
        "keyword": "healthy meal prep recipes",
        "status": "created",
        "content": "Meal prep is the easiest way to eat well during a busy week...",
        "external_post_id": "post_456",
        "created_at": datetime(2024, 9, 26, 14, 20, tzinfo=timezone.utc),
    },
    {
        "id": "gs_6",
        "outline": "Cryptocurrency Investment Guide: Understanding Bitcoin, Ethereum, and DeFi",
        "meta_title": "Crypto Investment Guide 2024: Bitcoin, Ethereum & DeFi",
        "meta_description": (
            "Learn cryptocurrency investing fundamentals, from Bitcoin basics to DeFi strategies. "
            "Safe investing tips for beginners."
        ),
        "keyword": "cryptocurrency investment guide",
        "status": "generating",
        "content": "",
    },
]


class FixtureSource(RecordSource):
    """Offline stand-in for the sheet. Never raises."""

    name = "fixture"

    def __init__(
        self,
        *,
        delay_s: float = 0.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.delay_s = delay_s
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def fetch_records(self) -> List[PipelineRecord]:
        if self.delay_s > 0:
            time.sleep(self.delay_s)

        imported_at = self.clock()
        records: List[PipelineRecord] = []
        for row in SAMPLE_LAYOUTS:
            records.append(
                PipelineRecord(
                    id=row["id"],
                    outline=row["outline"],
                    meta_title=row["meta_title"],
                    meta_description=row["meta_description"],
                    keyword=row["keyword"],
                    content=row["content"],
                    state=classify(row["status"], row["content"]),
                    external_post_id=row.get("external_post_id"),
                    created_at=row.get("created_at"),
                    imported_at=imported_at,
                    title=row["meta_title"],
                    body=row["content"],
                    excerpt=row["meta_description"],
                )
            )

        logger.info(f"Loaded {len(records)} fixture records")
        return records
