"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ntn_gateway import __version__
from ntn_gateway.api.dependencies import app_state
from ntn_gateway.api.routes import router as api_router
from ntn_gateway.core.cache import TelemetryCache
from ntn_gateway.core.config import Settings, setup_logging
from ntn_gateway.core.errors import TransportOpenError
from ntn_gateway.core.events import EventLog
from ntn_gateway.core.models import HealthResponse
from ntn_gateway.protocol.constants import SessionState
from ntn_gateway.protocol.scheduler import PollingScheduler, RetryPolicy
from ntn_gateway.protocol.session import SessionEngine
from ntn_gateway.serial.connection import SerialTransport

logger = logging.getLogger(__name__)


def build_engine(settings: Settings, transport=None) -> SessionEngine:
    """Wire a SessionEngine from settings."""
    transport = transport or SerialTransport(port=settings.serial_port, timeout=settings.serial_timeout)
    return SessionEngine(
        transport=transport,
        cache=TelemetryCache(),
        events=EventLog(capacity=settings.log_capacity),
        unit_id=settings.unit_id,
        baudrate=settings.serial_baud,
        scheduler=PollingScheduler(
            unit_id=settings.unit_id,
            static_step_delay=settings.static_step_delay,
            status_step_delay=settings.status_step_delay,
        ),
        retry_policy=RetryPolicy(
            max_attempts=settings.unlock_attempts,
            settle_delay=settings.unlock_settle_delay,
            verify_timeout=settings.unlock_verify_timeout,
            continue_degraded=settings.continue_degraded,
        ),
        poll_interval=settings.poll_interval,
        startup_delay=settings.startup_delay,
        config_step_delay=settings.config_step_delay,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = app_state.settings or Settings()
    app_state.settings = settings

    setup_logging(settings.log_level)
    logger.info(f"Starting NTN Dongle Gateway v{__version__}")

    app_state.transport = SerialTransport(port=settings.serial_port, timeout=settings.serial_timeout)
    app_state.engine = build_engine(settings, app_state.transport)

    if settings.auto_connect:
        try:
            await app_state.engine.connect()
            logger.info(f"Connected to {settings.serial_port}")
        except TransportOpenError:
            logger.warning(f"Failed to connect to {settings.serial_port}, use POST /api/connect to retry")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if app_state.engine is not None:
        await app_state.engine.disconnect()


app = FastAPI(
    title="NTN Dongle Gateway",
    description="Modbus-RTU telemetry gateway for NTN dongles",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(api_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "NTN Dongle Gateway",
        "version": __version__,
        "status": "running",
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    engine = app_state.engine

    if engine is None:
        return HealthResponse(
            status="unhealthy",
            dongle_connected=False,
            session_state=SessionState.IDLE,
            last_update=None,
        )

    connected = engine.connected
    polling = engine.state is SessionState.POLLING
    if connected and polling and engine.unlock_verified:
        status = "healthy"
    elif connected:
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(
        status=status,
        dongle_connected=connected,
        session_state=engine.state,
        last_update=engine.cache.last_update,
    )


def main():
    """Run the application (for CLI entry point)."""
    import uvicorn

    settings = Settings()
    setup_logging(settings.log_level)
    app_state.settings = settings

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
