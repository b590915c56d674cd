from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from postlayout_pipeline.models import PipelineRecord


class SessionSnapshot(BaseModel):
    """Serialized working set of one import session.

    Nothing is persisted implicitly; callers decide when to save/restore.
    """

    version: int = Field(default=1)
    session_id: str
    source: Optional[str] = Field(default=None)
    imported_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)
    records: List[PipelineRecord] = Field(default_factory=list)


def default_session_path(data_dir: Path) -> Path:
    return data_dir / "session.json"


def load_session(path: Path) -> SessionSnapshot:
    """Load a session snapshot; raises FileNotFoundError if none was saved."""

    if not path.exists():
        raise FileNotFoundError(str(path))

    raw = path.read_text(encoding="utf-8")
    parsed = json.loads(raw) if raw.strip() else {}
    if not isinstance(parsed, dict):
        raise ValueError("session snapshot must be a JSON object at the top level")

    try:
        return SessionSnapshot.model_validate(parsed)
    except ValidationError as exc:
        raise ValueError(f"Invalid session snapshot: {exc}") from exc


def save_session(path: Path, snapshot: SessionSnapshot) -> None:
    """Atomically write the snapshot as stable JSON (temp file + os.replace)."""

    path.parent.mkdir(parents=True, exist_ok=True)

    payload: Dict[str, Any] = snapshot.model_dump(mode="json")
    content = json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2) + "\n"

    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(content, encoding="utf-8")
    os.replace(tmp_path, path)
