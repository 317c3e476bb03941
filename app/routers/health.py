"""Health-check endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from app import __version__
from app.models.responses import HealthResponse
from app.services.dhcp_service import dhcp_service

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def service_health() -> HealthResponse:
    """Basic liveness probe (no auth required)."""
    status = await dhcp_service.status()
    return HealthResponse(status="ok", version=__version__, dhcp_running=status.running)
