from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from postlayout_pipeline.config import Settings
from postlayout_pipeline.generation.offline import OfflineGenerationClient
from postlayout_pipeline.generation.provider import GenerationClient
from postlayout_pipeline.generation.webhook import WebhookGenerationClient
from postlayout_pipeline.pipeline.orchestrator import PipelineOrchestrator
from postlayout_pipeline.posts.client import PostCreationClient
from postlayout_pipeline.sources.fixtures import FixtureSource
from postlayout_pipeline.sources.provider import RecordSource
from postlayout_pipeline.sources.sheets import SheetsSource


def build_source(settings: Settings, clock: Optional[Callable[[], datetime]] = None) -> RecordSource:
    if settings.source == "fixture":
        return FixtureSource(delay_s=settings.offline.import_delay_s, clock=clock)
    return SheetsSource(settings.sheets, id_strategy=settings.id_strategy, clock=clock)


def build_generator(settings: Settings, clock: Optional[Callable[[], datetime]] = None) -> GenerationClient:
    if settings.generator == "webhook":
        return WebhookGenerationClient(settings.generation, sheet_id=settings.sheets.sheet_id)
    return OfflineGenerationClient(delay_s=settings.offline.generation_delay_s, clock=clock)


def build_orchestrator(
    settings: Settings,
    *,
    source: Optional[RecordSource] = None,
    generator: Optional[GenerationClient] = None,
    posts: Optional[PostCreationClient] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> PipelineOrchestrator:
    """Wire the orchestrator from settings; explicit collaborators take precedence."""

    return PipelineOrchestrator(
        source=source or build_source(settings, clock),
        generator=generator or build_generator(settings, clock),
        posts=posts or PostCreationClient(settings.posts_api),
        fallback_source=FixtureSource(delay_s=settings.offline.import_delay_s, clock=clock),
        create_delay_s=settings.bulk.create_delay_s,
        generate_delay_s=settings.bulk.generate_delay_s,
        items_per_page=settings.bulk.items_per_page,
        clock=clock,
    )
