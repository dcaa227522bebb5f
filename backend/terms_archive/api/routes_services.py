"""Read-only routes describing declared services."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from terms_archive.api.dependencies import get_services
from terms_archive.models.declarations import Service
from terms_archive.models.dto import ServiceResponse, ServiceSummary

router = APIRouter()


@router.get("/services", response_model=list[ServiceSummary], summary="List declared services")
async def list_services(services: dict[str, Service] = Depends(get_services)) -> list[ServiceSummary]:
    return [ServiceSummary(id=service.id, name=service.name) for service in services.values()]


@router.get("/services/{service_id}", response_model=ServiceResponse, summary="Describe a declared service")
async def get_service(service_id: str, services: dict[str, Service] = Depends(get_services)) -> ServiceResponse:
    service = services.get(service_id)
    if service is None:
        raise HTTPException(status_code=404, detail="Service not found")
    return ServiceResponse.from_service(service)
