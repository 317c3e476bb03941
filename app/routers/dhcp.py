"""Setup-network DHCP server control."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from app.auth import require_api_key
from app.models.dhcp import DhcpHostsRequest, DhcpHostsResponse, SupervisorStatus
from app.services.dhcp_service import dhcp_service

router = APIRouter(prefix="/dhcp", tags=["dhcp"], dependencies=[Depends(require_api_key)])


@router.get("", response_model=SupervisorStatus)
async def dhcp_status() -> SupervisorStatus:
    return await dhcp_service.status()


@router.post("/start", response_model=SupervisorStatus)
async def dhcp_start() -> SupervisorStatus:
    """Start the server; repeated calls return the first attempt's result."""
    return await dhcp_service.start()


@router.post("/ensure", response_model=SupervisorStatus)
async def dhcp_ensure() -> SupervisorStatus:
    return await dhcp_service.ensure()


@router.post("/stop", response_model=SupervisorStatus)
async def dhcp_stop() -> SupervisorStatus:
    return await dhcp_service.stop()


@router.put("/hosts", response_model=DhcpHostsResponse)
async def dhcp_hosts(req: DhcpHostsRequest) -> DhcpHostsResponse:
    """Replace the static leases and ask a running server to reload."""
    try:
        return await dhcp_service.update_hosts(req.hosts)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except OSError as exc:
        raise HTTPException(status_code=500, detail=f"Failed to write DHCP configuration: {exc}") from exc
