"""FastAPI application entry-point."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from app import __version__
from app.routers import dhcp, health, remote
from app.services.dhcp_service import dhcp_service
from app.services.remote_service import remote_service
from app.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hooks."""
    setup_logging()
    log.info("app.started", version=__version__)
    yield
    # Shutdown: never leave the DHCP server running without its supervisor
    dhcp_service.close()
    remote_service.close()


app = FastAPI(
    title="Scenario Control API",
    description="Remote VM configuration and setup-network DHCP supervision",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(remote.router)
app.include_router(dhcp.router)
