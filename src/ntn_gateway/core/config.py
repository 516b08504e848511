"""Application configuration using pydantic-settings."""

import logging
import sys

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables
    prefixed with NTN_ (e.g., NTN_SERIAL_PORT).

    ``serial_port`` accepts a device path or any pyserial URL
    (``socket://host:port`` for a network serial bridge, ``loop://``).
    """

    serial_port: str = "/dev/ttyUSB0"
    serial_baud: int = 115200
    serial_timeout: float = 0.2
    unit_id: int = 1
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    poll_interval: float = 3.0
    static_step_delay: float = 0.2
    status_step_delay: float = 0.15
    config_step_delay: float = 0.2
    startup_delay: float = 0.5
    unlock_attempts: int = 3
    unlock_settle_delay: float = 0.3
    unlock_verify_timeout: float = 0.5
    continue_degraded: bool = True
    log_capacity: int = 100
    auto_connect: bool = True

    model_config = SettingsConfigDict(env_prefix="NTN_")


def setup_logging(level: str = "INFO") -> None:
    """Configure application logging.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
