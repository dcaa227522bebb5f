"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from terms_archive.core.config import Settings, get_settings
from terms_archive.models.declarations import Service
from terms_archive.services.declarations import load_services

_SERVICES: dict[str, Service] | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_services() -> dict[str, Service]:
    global _SERVICES
    if _SERVICES is None:
        _SERVICES = load_services(get_app_settings().declarations_path)
    return _SERVICES


__all__ = ["get_app_settings", "get_services"]
