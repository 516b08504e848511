"""Data models for the NTN dongle gateway."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ntn_gateway.protocol.constants import DEFAULT_LOCAL_PORT, SessionState


class DeviceStatus(BaseModel):
    """Decoded bits of the dongle status word."""

    at_ready: bool = Field(False, description="Module answers AT commands")
    downlink_ready: bool = Field(False, description="Downlink/IP ready")
    sim_ready: bool = Field(False, description="SIM detected and ready")
    network_registered: bool = Field(False, description="Registered on the network")


class TelemetrySnapshot(BaseModel):
    """Latest known device identity, status and signal quality."""

    model_name: str | None = Field(None, description="Model name string")
    firmware_version: str | None = Field(None, description="Firmware version string")
    imsi: str | None = Field(None, description="SIM IMSI")
    status: DeviceStatus = Field(default_factory=DeviceStatus, description="Status word bits")
    rsrp: str | None = Field(None, description="Reference Signal Received Power (dBm)")
    sinr: str | None = Field(None, description="Signal-to-Interference-plus-Noise Ratio (dB)")
    last_updated: datetime | None = Field(None, description="Time of the last merged response")
    config_applied: bool = Field(False, description="A configuration write was acknowledged")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "model_name": "NTN-M1",
                "firmware_version": "1.02",
                "imsi": "001010123456789",
                "status": {
                    "at_ready": True,
                    "downlink_ready": True,
                    "sim_ready": True,
                    "network_registered": False,
                },
                "rsrp": "-95",
                "sinr": "7",
                "last_updated": "2026-01-13T10:30:00",
                "config_applied": False,
            }
        }
    )


class LogDirection(str, Enum):
    """Origin of a log event."""

    SENT = "sent"
    RECEIVED = "received"
    SYSTEM = "system"


class LogEvent(BaseModel):
    """A single entry in the session event feed."""

    timestamp: datetime = Field(default_factory=datetime.now, description="Event time")
    direction: LogDirection = Field(..., description="Sent, received or system")
    message: str = Field(..., description="Hex dump and/or human-readable text")
    # Raw bytes stay in-process; the message already carries the hex dump
    data: bytes | None = Field(None, exclude=True, description="Raw bytes for traffic events")
    is_error: bool = Field(False, description="Whether the event reports a failure")


class DongleConfig(BaseModel):
    """Network configuration written to the dongle."""

    apn: str = Field(..., description="Access point name")
    remote_ip: str = Field(..., description="Remote server IP address")
    remote_port: str = Field(..., description="Remote server port")
    local_port: str = Field(DEFAULT_LOCAL_PORT, description="Local UDP port")

    @field_validator("apn", "remote_ip", "remote_port", "local_port")
    @classmethod
    def validate_ascii(cls, v: str) -> str:
        """Register fields carry ASCII only."""
        v = v.strip()
        if not v.isascii():
            raise ValueError("Value must be ASCII")
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "apn": "internet",
                "remote_ip": "10.0.0.1",
                "remote_port": "9000",
                "local_port": "55001",
            }
        }
    )


# ============================================================================
# API Request/Response Models
# ============================================================================


class SessionResponse(BaseModel):
    """Response model for GET /api/session."""

    state: SessionState = Field(..., description="Current session state")
    connected: bool = Field(..., description="Whether the transport is open")
    unlock_verified: bool = Field(..., description="Whether the unlock handshake succeeded")
    pending_command: str | None = Field(None, description="Command awaiting its response")


class LogsResponse(BaseModel):
    """Response model for GET /api/logs."""

    count: int = Field(..., ge=0, description="Number of events returned")
    events: list[LogEvent] = Field(default_factory=list, description="Events, oldest first")


class ConfigApplyResponse(BaseModel):
    """Response model for POST /api/config."""

    success: bool = Field(..., description="All configuration frames were sent")
    config: DongleConfig = Field(..., description="Configuration that was written")
    timestamp: datetime = Field(default_factory=datetime.now, description="Operation timestamp")


class ErrorResponse(BaseModel):
    """Response model for errors."""

    success: bool = Field(False, description="Operation success status")
    error: str = Field(..., description="Error message")
    detail: str | None = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Health status (healthy/degraded/unhealthy)")
    dongle_connected: bool = Field(..., description="Whether the dongle transport is open")
    session_state: SessionState = Field(..., description="Current session state")
    last_update: datetime | None = Field(None, description="Last merged telemetry timestamp")
