"""Posts API client."""

from postlayout_pipeline.posts.client import CreationResult, PostCreationClient, build_post_payload, generate_slug

__all__ = ["CreationResult", "PostCreationClient", "build_post_payload", "generate_slug"]
