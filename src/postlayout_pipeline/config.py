from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError


class PathsConfig(BaseModel):
    data_dir: Path = Field(default=Path("data"))
    logs_dir: Path = Field(default=Path("logs"))
    exports_dir: Path = Field(default=Path("exports"))


class SheetsConfig(BaseModel):
    api_url: str = Field(default="https://sheets.googleapis.com/v4/spreadsheets")
    # API key and sheet id are read from env (GOOGLE_SHEETS_API_KEY / GOOGLE_SHEET_ID)
    api_key: Optional[str] = Field(default=None)
    sheet_id: Optional[str] = Field(default=None)
    # Row 1 holds the headers
    range: str = Field(default="Post1!A2:F1000")
    timeout_s: float = Field(default=20.0)
    max_attempts: int = Field(default=3)


class GenerationConfig(BaseModel):
    webhook_url: Optional[str] = Field(default=None)
    # Where n8n posts the generated content back for created posts
    callback_url: Optional[str] = Field(default=None)
    timeout_s: float = Field(default=30.0)
    max_attempts: int = Field(default=2)


class PostsApiConfig(BaseModel):
    base_url: str = Field(default="http://localhost:3000")
    access_token: Optional[str] = Field(default=None)
    timeout_s: float = Field(default=20.0)
    max_attempts: int = Field(default=2)


class BulkConfig(BaseModel):
    create_delay_s: float = Field(default=0.5)
    generate_delay_s: float = Field(default=1.0)
    items_per_page: int = Field(default=10, ge=1)


class OfflineConfig(BaseModel):
    import_delay_s: float = Field(default=1.5)
    generation_delay_s: float = Field(default=2.0)


class Settings(BaseModel):
    """Application settings.

    Wiring:
    - source selects the primary importer (sheets or the canned fixture set).
      The fixture set is always the fallback when the sheet cannot be read.
    - generator selects the generation client (n8n webhook or offline synthesizer).

    Ids:
    - id_strategy "content" derives record ids from outline+keyword so they
      survive re-imports; "position" uses the sheet row number.

    Secrets (sheets.api_key, posts_api.access_token) are read from env/YAML and
    must not be committed.
    """

    source: Literal["sheets", "fixture"] = Field(default="sheets")
    generator: Literal["webhook", "offline"] = Field(default="offline")
    id_strategy: Literal["content", "position"] = Field(default="content")

    sheets: SheetsConfig = Field(default_factory=SheetsConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    posts_api: PostsApiConfig = Field(default_factory=PostsApiConfig)
    bulk: BulkConfig = Field(default_factory=BulkConfig)
    offline: OfflineConfig = Field(default_factory=OfflineConfig)

    paths: PathsConfig = Field(default_factory=PathsConfig)


# env var -> (section, key); section None means top level
_ENV_OVERRIDES: Dict[str, tuple[Optional[str], str]] = {
    "PIPELINE_SOURCE": (None, "source"),
    "PIPELINE_GENERATOR": (None, "generator"),
    "GOOGLE_SHEETS_API_URL": ("sheets", "api_url"),
    "GOOGLE_SHEETS_API_KEY": ("sheets", "api_key"),
    "GOOGLE_SHEET_ID": ("sheets", "sheet_id"),
    "GOOGLE_SHEET_RANGE": ("sheets", "range"),
    "N8N_WEBHOOK_URL": ("generation", "webhook_url"),
    "N8N_CALLBACK_URL": ("generation", "callback_url"),
    "POSTS_API_URL": ("posts_api", "base_url"),
    "POSTS_API_TOKEN": ("posts_api", "access_token"),
}


def load_settings(config_path: Optional[Path]) -> Settings:
    """Load settings from .env + optional YAML.

    Precedence:
      1) defaults
      2) environment / .env (see _ENV_OVERRIDES)
      3) YAML file (if provided)

    Only the project's local `.env` is loaded so unrelated `.env` files in
    parent directories cannot leak into runs or tests.
    """

    load_dotenv(dotenv_path=Path(".env"), override=False)

    merged: Dict[str, Any] = Settings().model_dump(mode="python")

    for env_key, (section, key) in _ENV_OVERRIDES.items():
        value = _getenv(env_key)
        if value is None:
            continue
        if section is None:
            merged[key] = value
        else:
            merged.setdefault(section, {})[key] = value

    if config_path is not None:
        cfg = _load_yaml(config_path)
        merged = _deep_merge(merged, cfg)

    try:
        return Settings.model_validate(merged)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def _getenv(key: str) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(str(path))
    raw = path.read_text(encoding="utf-8")
    parsed = yaml.safe_load(raw) or {}
    if not isinstance(parsed, dict):
        raise ValueError("YAML config must be a mapping/object at the top level")
    return parsed


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out
