"""Health check endpoints."""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

from core.observability.metrics import get_metrics


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint."""
    provisioner = getattr(request.app.state, "provisioner", None)
    return HealthResponse(
        status="healthy" if provisioner is not None else "degraded",
        timestamp=datetime.utcnow().isoformat(),
        version="1.0.0",
        services={
            "api": "up",
            "provisioner": "up" if provisioner is not None else "down",
            "odoo": provisioner.config.base_url if provisioner is not None else "unknown",
        }
    )


@router.get("/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, str]:
    """Readiness probe for Kubernetes."""
    if getattr(request.app.state, "provisioner", None) is None:
        response.status_code = 503
        return {"status": "starting"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}


@router.get("/metrics")
async def metrics_summary() -> Dict[str, Any]:
    """In-process provisioning metrics."""
    return get_metrics().get_summary()
