"""Core application functionality."""

from ntn_gateway.core.cache import TelemetryCache
from ntn_gateway.core.config import Settings, setup_logging
from ntn_gateway.core.events import EventLog
from ntn_gateway.core.models import DeviceStatus, LogEvent, TelemetrySnapshot

__all__ = [
    "TelemetryCache",
    "EventLog",
    "DeviceStatus",
    "LogEvent",
    "TelemetrySnapshot",
    "Settings",
    "setup_logging",
]
