"""Load service declarations from a directory of JSON files.

Each ``<service_id>.json`` file looks like::

    {
      "name": "Service A",
      "documents": {
        "Terms of Service": {"fetch": "https://example.com/tos", "select": "main", "remove": [".ad"]},
        "Privacy Policy": {
          "combine": [{"fetch": "https://example.com/privacy"}, {"fetch": "https://example.com/cookies"}],
          "select": "article"
        }
      }
    }

Selectors declared next to ``combine`` apply to every combined source document
unless the source document declares its own.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import orjson
from pydantic import ValidationError

from terms_archive.core.errors import DeclarationError
from terms_archive.core.logging import get_logger
from terms_archive.models.declarations import Service, SourceDocument, Terms

logger = get_logger(__name__)

DECLARATION_SUFFIX = ".json"
IGNORED_SUFFIXES = (".history.json",)


def load_services(declarations_path: Path) -> dict[str, Service]:
    """Return every service declared in ``declarations_path``, keyed by id."""
    directory = declarations_path.expanduser()
    if not directory.is_dir():
        raise DeclarationError(f"Declarations directory {directory} does not exist")
    services: dict[str, Service] = {}
    for path in sorted(directory.glob(f"*{DECLARATION_SUFFIX}")):
        if path.name.endswith(IGNORED_SUFFIXES):
            continue
        service = load_service(path)
        services[service.id] = service
    logger.info("Loaded %s service declarations from %s", len(services), directory)
    return services


def load_service(path: Path) -> Service:
    service_id = path.name[: -len(DECLARATION_SUFFIX)]
    try:
        raw = orjson.loads(path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as exc:
        raise DeclarationError(f"Could not read declaration {path.name}: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise DeclarationError(f"Declaration {path.name} must be a JSON object")
    try:
        return parse_service(service_id, raw)
    except (ValidationError, KeyError, TypeError, AttributeError) as exc:
        raise DeclarationError(f"Invalid declaration {path.name}: {exc}") from exc


def parse_service(service_id: str, raw: Mapping[str, Any]) -> Service:
    documents = raw.get("documents") or {}
    terms = {
        document_type: _parse_terms(document_type, declaration)
        for document_type, declaration in documents.items()
    }
    return Service(id=service_id, name=raw.get("name") or service_id, terms=terms)


def _parse_terms(document_type: str, declaration: Mapping[str, Any]) -> Terms:
    if "combine" not in declaration:
        return Terms(type=document_type, source_documents=[_parse_source_document(declaration)])
    defaults = {key: declaration[key] for key in ("select", "remove", "headers") if key in declaration}
    source_documents = []
    for index, part in enumerate(declaration["combine"], start=1):
        merged = {**defaults, **part}
        merged.setdefault("id", str(index))
        source_documents.append(_parse_source_document(merged))
    return Terms(type=document_type, source_documents=source_documents)


def _parse_source_document(declaration: Mapping[str, Any]) -> SourceDocument:
    return SourceDocument(
        id=declaration.get("id"),
        location=declaration["fetch"],
        content_selectors=declaration.get("select"),
        remove_selectors=declaration.get("remove"),
        headers=declaration.get("headers") or {},
    )


__all__ = ["load_services", "load_service", "parse_service"]
