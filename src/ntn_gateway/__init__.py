"""NTN Dongle Gateway - Modbus-RTU telemetry gateway for NTN dongles."""

__version__ = "0.1.0"
