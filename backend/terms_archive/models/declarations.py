"""Service declarations: which documents to track and how to extract them."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field, field_validator, model_validator


@dataclass(frozen=True, slots=True)
class SelectionRules:
    """CSS-like selectors picking the meaningful part of a document."""

    content_selectors: tuple[str, ...] = ()
    remove_selectors: tuple[str, ...] = ()


class SourceDocument(BaseModel):
    id: str | None = None
    location: str
    content_selectors: list[str] = Field(default_factory=list)
    remove_selectors: list[str] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)

    model_config = {"validate_assignment": True}

    @field_validator("content_selectors", "remove_selectors", mode="before")
    @classmethod
    def _listify(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @property
    def rules(self) -> SelectionRules:
        return SelectionRules(tuple(self.content_selectors), tuple(self.remove_selectors))


class Terms(BaseModel):
    """One tracked document type of a service, made of one or more source documents."""

    type: str
    source_documents: list[SourceDocument] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_source_keys(self) -> "Terms":
        keys = [self.source_key(index) for index in range(len(self.source_documents))]
        duplicates = sorted({key for key in keys if keys.count(key) > 1})
        if duplicates:
            raise ValueError(f"{self.type} has several source documents keyed {', '.join(duplicates)}")
        return self

    @property
    def is_combined(self) -> bool:
        return len(self.source_documents) > 1

    def source_key(self, index: int) -> str | None:
        """Snapshot key of a source document; single-source documents have none."""
        if not self.is_combined:
            return None
        return self.source_documents[index].id or str(index + 1)


class Service(BaseModel):
    id: str
    name: str
    terms: dict[str, Terms] = Field(default_factory=dict)

    def get_terms(self, document_type: str) -> Terms:
        return self.terms[document_type]

    def get_document_types(self) -> list[str]:
        return list(self.terms)


__all__ = ["SelectionRules", "SourceDocument", "Terms", "Service"]
