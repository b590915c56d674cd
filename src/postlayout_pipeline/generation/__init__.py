"""Content generation clients (n8n webhook + offline synthesizer)."""

from postlayout_pipeline.generation.offline import OfflineGenerationClient, render_placeholder
from postlayout_pipeline.generation.provider import GenerationClient, GenerationResult
from postlayout_pipeline.generation.webhook import WebhookGenerationClient

__all__ = [
    "GenerationClient",
    "GenerationResult",
    "OfflineGenerationClient",
    "WebhookGenerationClient",
    "render_placeholder",
]
