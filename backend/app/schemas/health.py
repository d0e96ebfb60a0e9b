"""
Recipe Manager Media Backend — Health Schemas
==============================================
"""

from typing import Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or unhealthy")
    timestamp: str
    service: str
    version: str
    environment: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    """Body of /live and /ready."""

    status: str
    timestamp: str
    service: str
    error: Optional[str] = None
