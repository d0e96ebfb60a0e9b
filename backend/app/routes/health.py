"""
Recipe Manager Media Backend — Health & Monitoring Routes
==========================================================

What:  Liveness, readiness and metrics endpoints for orchestrators and dashboards.
How:   Served without the /api prefix so container health checks stay simple.

Endpoints:
    GET /health            basic status; 503 when the upload directory is unusable
    GET /health/detailed   checks + metrics + system info
    GET /ready             readiness (upload directory writable)
    GET /live              liveness (process responds; no dependency checks)
    GET /metrics           request and upload counters
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app import __version__
from app.config import settings
from app.schemas.health import HealthResponse, ReadinessResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

SERVICE_NAME = "recipe-manager-api"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _storage_writable(request: Request) -> bool:
    try:
        return await request.app.state.upload_service.store.is_writable()
    except OSError as e:
        logger.warning("Health check: upload directory unusable: %s", str(e))
        return False


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(request: Request):
    monitoring = request.app.state.monitoring
    healthy = await _storage_writable(request)
    body = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        timestamp=_now(),
        service=SERVICE_NAME,
        version=__version__,
        environment=settings.environment,
        uptime_seconds=monitoring.uptime_seconds(),
    )
    if not healthy:
        return JSONResponse(status_code=503, content=body.model_dump())
    return body


@router.get("/health/detailed", summary="Detailed health with metrics")
async def detailed_health(request: Request) -> JSONResponse:
    monitoring = request.app.state.monitoring
    status = monitoring.get_health_status(storage_writable=await _storage_writable(request))
    return JSONResponse(
        status_code=200 if status["status"] == "healthy" else 503,
        content={
            **status,
            "service": SERVICE_NAME,
            "version": __version__,
            "system": monitoring.get_system_info(),
        },
    )


@router.get("/ready", response_model=ReadinessResponse, summary="Readiness check")
async def readiness(request: Request):
    if await _storage_writable(request):
        return ReadinessResponse(status="ready", timestamp=_now(), service=SERVICE_NAME)
    return JSONResponse(
        status_code=503,
        content=ReadinessResponse(
            status="not ready",
            timestamp=_now(),
            service=SERVICE_NAME,
            error="Upload storage not ready",
        ).model_dump(),
    )


@router.get("/live", response_model=ReadinessResponse, summary="Liveness check")
async def liveness() -> ReadinessResponse:
    return ReadinessResponse(status="alive", timestamp=_now(), service=SERVICE_NAME)


@router.get("/metrics", summary="Request and upload counters")
async def metrics(request: Request) -> dict:
    return {"metrics": request.app.state.monitoring.get_metrics(), "service": SERVICE_NAME}
