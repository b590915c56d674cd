"""Explicit snapshot/restore of the working set."""

from postlayout_pipeline.storage.session_store import (
    SessionSnapshot,
    default_session_path,
    load_session,
    save_session,
)

__all__ = ["SessionSnapshot", "default_session_path", "load_session", "save_session"]
