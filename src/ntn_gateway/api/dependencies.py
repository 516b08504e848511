"""FastAPI dependency injection for shared application state."""

from ntn_gateway.core.config import Settings
from ntn_gateway.protocol.session import SessionEngine
from ntn_gateway.serial.transport import Transport


class AppState:
    """Holds shared application state instances.

    Created during app startup and accessed via FastAPI dependencies.
    """

    def __init__(self) -> None:
        self.settings: Settings | None = None
        self.transport: Transport | None = None
        self.engine: SessionEngine | None = None


# Global app state singleton
app_state = AppState()


def get_engine() -> SessionEngine:
    """Get the session engine instance."""
    assert app_state.engine is not None, "App not initialized"
    return app_state.engine


def get_settings() -> Settings:
    """Get the settings instance."""
    assert app_state.settings is not None, "App not initialized"
    return app_state.settings
