"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from pydantic import BaseModel

from terms_archive.models.declarations import Service


class ServiceSummary(BaseModel):
    id: str
    name: str


class SourceDocumentResponse(BaseModel):
    id: str | None = None
    location: str
    content_selectors: list[str]
    remove_selectors: list[str]


class TermsResponse(BaseModel):
    type: str
    source_documents: list[SourceDocumentResponse]


class ServiceResponse(ServiceSummary):
    terms: list[TermsResponse]

    @classmethod
    def from_service(cls, service: Service) -> "ServiceResponse":
        return cls(
            id=service.id,
            name=service.name,
            terms=[
                TermsResponse(
                    type=terms.type,
                    source_documents=[
                        SourceDocumentResponse(
                            id=source_document.id,
                            location=source_document.location,
                            content_selectors=source_document.content_selectors,
                            remove_selectors=source_document.remove_selectors,
                        )
                        for source_document in terms.source_documents
                    ],
                )
                for terms in service.terms.values()
            ],
        )


__all__ = [
    "ServiceSummary",
    "SourceDocumentResponse",
    "TermsResponse",
    "ServiceResponse",
]
