"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "TARC_"
DEFAULT_CONFIG_PATH = Path("~/.config/terms-archive/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "snapshots_path"): "snapshots_path",
    ("storage", "versions_path"): "versions_path",
    ("storage", "author", "name"): "author_name",
    ("storage", "author", "email"): "author_email",
    ("fetcher", "timeout"): "fetch_timeout",
    ("fetcher", "user_agent"): "user_agent",
    ("tracking", "max_workers"): "max_workers",
    ("services", "declarations_path"): "declarations_path",
    ("api", "base_path"): "api_base_path",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    declarations_path: Path = Field(default=Path("declarations"))
    snapshots_path: Path = Field(default=Path.home() / ".terms-archive" / "snapshots")
    versions_path: Path = Field(default=Path.home() / ".terms-archive" / "versions")
    author_name: str = "Terms Archive Bot"
    author_email: str = "bot@terms-archive.invalid"
    fetch_timeout: float = 30.0
    user_agent: str = "terms-archive/0.1 (+https://github.com/terms-archive)"
    max_workers: int = Field(default=4, ge=1)
    api_base_path: str = "/api"

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("declarations_path", "snapshots_path", "versions_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("storage paths must be a path or string")

    @field_validator("api_base_path")
    @classmethod
    def _strip_base_path(cls, value: str) -> str:
        return "/" + value.strip("/") if value.strip("/") else ""

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with TARC_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
