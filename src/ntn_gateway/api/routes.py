"""API route handlers."""

from fastapi import APIRouter, Depends, HTTPException, Query

from ntn_gateway.api.dependencies import get_engine
from ntn_gateway.core.errors import TransportOpenError
from ntn_gateway.core.models import (
    ConfigApplyResponse,
    DongleConfig,
    ErrorResponse,
    LogsResponse,
    SessionResponse,
    TelemetrySnapshot,
)
from ntn_gateway.protocol.constants import SessionState
from ntn_gateway.protocol.session import SessionEngine

router = APIRouter(prefix="/api")


def _session_response(engine: SessionEngine) -> SessionResponse:
    pending = engine.pending_command
    return SessionResponse(
        state=engine.state,
        connected=engine.connected,
        unlock_verified=engine.unlock_verified,
        pending_command=pending.value if pending is not None else None,
    )


@router.get("/session", response_model=SessionResponse)
async def get_session(engine: SessionEngine = Depends(get_engine)):
    """Get the session state."""
    return _session_response(engine)


@router.post(
    "/connect",
    response_model=SessionResponse,
    responses={503: {"model": ErrorResponse}},
)
async def connect(engine: SessionEngine = Depends(get_engine)):
    """Open the transport and start the handshake."""
    try:
        await engine.connect()
    except TransportOpenError as e:
        raise HTTPException(status_code=503, detail=str(e)) from None
    return _session_response(engine)


@router.post("/disconnect", response_model=SessionResponse)
async def disconnect(engine: SessionEngine = Depends(get_engine)):
    """Stop polling and close the transport."""
    await engine.disconnect()
    return _session_response(engine)


@router.get("/telemetry", response_model=TelemetrySnapshot)
async def get_telemetry(engine: SessionEngine = Depends(get_engine)):
    """Get the latest telemetry snapshot."""
    return await engine.snapshot()


@router.get("/logs", response_model=LogsResponse)
async def get_logs(
    limit: int | None = Query(None, ge=1, le=1000),
    engine: SessionEngine = Depends(get_engine),
):
    """Get the event feed, oldest first."""
    events = engine.events.recent(limit) if limit is not None else engine.logs()
    return LogsResponse(count=len(events), events=events)


@router.delete("/logs", response_model=LogsResponse)
async def clear_logs(engine: SessionEngine = Depends(get_engine)):
    """Clear the event feed."""
    engine.clear_logs()
    return LogsResponse(count=0, events=[])


@router.post(
    "/config",
    response_model=ConfigApplyResponse,
    responses={
        400: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def apply_config(
    config: DongleConfig,
    engine: SessionEngine = Depends(get_engine),
):
    """Write APN, remote endpoint and local port to the dongle."""
    if engine.state is not SessionState.POLLING:
        raise HTTPException(status_code=503, detail="Dongle session is not polling")

    try:
        success = await engine.apply_config(config)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    if not success:
        raise HTTPException(status_code=503, detail="Configuration could not be written")

    return ConfigApplyResponse(success=True, config=config)
