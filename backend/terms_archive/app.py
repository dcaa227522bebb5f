"""FastAPI application setup for Terms Archive."""

from __future__ import annotations

from fastapi import FastAPI

from terms_archive.api.dependencies import get_app_settings
from terms_archive.api.routes_services import router as services_router
from terms_archive.core.logging import configure_logging
from terms_archive.core.metrics import metrics_response

configure_logging()

app = FastAPI(
    title="Terms Archive",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(services_router, prefix=f"{get_app_settings().api_base_path}/v1", tags=["services"])


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}


@app.get("/metrics", tags=["admin"], summary="Prometheus metrics")
def get_metrics():
    return metrics_response()
