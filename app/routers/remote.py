"""Remote command / script execution endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from app.auth import require_api_key
from app.exceptions import FailureKind, RemoteExecutionError
from app.models.commands import CommandResult
from app.models.remote import CommandRequest, RevokeRequest, ScriptRequest
from app.models.responses import ErrorResponse
from app.services.remote_service import remote_service
from app.utils.logging import get_logger

log = get_logger(__name__)

router = APIRouter(
    prefix="/remote",
    tags=["remote"],
    dependencies=[Depends(require_api_key)],
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)

_STATUS_BY_KIND = {
    FailureKind.CONNECTION: 503,
    FailureKind.AUTH: 502,
    FailureKind.UNKNOWN: 502,
    FailureKind.RESOURCE: 400,
}


def _http_error(exc: RemoteExecutionError) -> HTTPException:
    log.warning("remote.request_failed", kind=exc.kind.value, error=exc.message)
    return HTTPException(
        status_code=_STATUS_BY_KIND[exc.kind],
        detail={"kind": exc.kind.value, "retryable": exc.retryable, "message": str(exc)},
    )


@router.post("/command", response_model=CommandResult)
async def run_command(req: CommandRequest) -> CommandResult:
    """Run a command (and optional follow-up) on one VM."""
    try:
        return await remote_service.run_command(req.target, req.command, req.secondary_command)
    except RemoteExecutionError as exc:
        raise _http_error(exc) from exc


@router.post("/script", response_model=CommandResult)
async def run_script(req: ScriptRequest) -> CommandResult:
    """Pipe a script from the scripts directory into ``bash -s`` on one VM."""
    try:
        return await remote_service.run_script(req.target, req.script)
    except RemoteExecutionError as exc:
        raise _http_error(exc) from exc


@router.post("/revoke", response_model=CommandResult)
async def revoke_access(req: RevokeRequest) -> CommandResult:
    """Remove the service key from a VM, optionally shutting it down after."""
    try:
        return await remote_service.revoke_access(req.target, req.shutdown_command)
    except RemoteExecutionError as exc:
        raise _http_error(exc) from exc
