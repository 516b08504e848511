"""Unit tests for API endpoints."""

import time

import pytest
from fastapi.testclient import TestClient

from fakes import FakeDongleTransport
from ntn_gateway.api.dependencies import app_state
from ntn_gateway.core.config import Settings
from ntn_gateway.main import app, build_engine
from ntn_gateway.protocol.constants import FunctionCode


def fast_settings() -> Settings:
    return Settings(
        auto_connect=False,
        startup_delay=0,
        unlock_settle_delay=0.01,
        unlock_verify_timeout=0.2,
        static_step_delay=0.01,
        status_step_delay=0.01,
        config_step_delay=0.01,
        poll_interval=0.05,
    )


@pytest.fixture
def dongle():
    """Fake dongle behind the engine."""
    return FakeDongleTransport()


@pytest.fixture
def client(dongle):
    """Test client whose engine talks to the fake dongle.

    The lifespan runs (and disconnects the engine on exit); the engine it
    builds is swapped for one wired to the fake transport.
    """
    app_state.settings = fast_settings()
    with TestClient(app, raise_server_exceptions=False) as c:
        app_state.transport = dongle
        app_state.engine = build_engine(app_state.settings, dongle)
        yield c
    app_state.settings = None
    app_state.transport = None
    app_state.engine = None


def wait_for_state(client, state: str, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if client.get("/api/session").json()["state"] == state:
            return True
        time.sleep(0.01)
    return False


def connect_and_poll(client) -> None:
    response = client.post("/api/connect")
    assert response.status_code == 200
    assert wait_for_state(client, "polling")


class TestRootEndpoint:
    """Tests for GET / endpoint."""

    def test_root(self, client):
        """Test root endpoint returns app info."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "NTN Dongle Gateway"
        assert "version" in data
        assert data["status"] == "running"


class TestHealthEndpoint:
    """Tests for GET /health endpoint."""

    def test_health_not_initialized(self, client):
        """Test health when no engine exists."""
        app_state.engine = None

        data = client.get("/health").json()

        assert data["status"] == "unhealthy"
        assert data["dongle_connected"] is False

    def test_health_disconnected(self, client):
        """Test health before connecting."""
        data = client.get("/health").json()

        assert data["status"] == "unhealthy"
        assert data["session_state"] == "idle"

    def test_health_polling(self, client):
        """Test health once the dongle is unlocked and polling."""
        connect_and_poll(client)

        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["dongle_connected"] is True

    def test_health_degraded_when_locked(self, client, dongle):
        """Test health when polling without a verified unlock."""
        dongle.model_replies.extend(["", "", ""])
        connect_and_poll(client)

        assert client.get("/health").json()["status"] == "degraded"


class TestSessionEndpoints:
    """Tests for session lifecycle endpoints."""

    def test_session_idle(self, client):
        """Test session state before connecting."""
        data = client.get("/api/session").json()

        assert data["state"] == "idle"
        assert data["connected"] is False
        assert data["unlock_verified"] is False
        assert data["pending_command"] is None

    def test_connect(self, client):
        """Test connecting reaches polling with a verified unlock."""
        connect_and_poll(client)

        data = client.get("/api/session").json()
        assert data["connected"] is True
        assert data["unlock_verified"] is True

    def test_connect_open_failure(self, client, dongle):
        """Test an unopenable port returns 503 and faults the session."""
        dongle.fail_open = True

        response = client.post("/api/connect")

        assert response.status_code == 503
        assert "device busy" in response.json()["detail"]
        assert client.get("/api/session").json()["state"] == "faulted"

    def test_disconnect(self, client, dongle):
        """Test disconnect closes the transport."""
        connect_and_poll(client)

        response = client.post("/api/disconnect")

        assert response.status_code == 200
        assert response.json()["state"] == "disconnected"
        assert "close" in dongle.calls


class TestTelemetryEndpoint:
    """Tests for GET /api/telemetry."""

    def test_empty_before_connect(self, client):
        """Test the snapshot is empty before any session."""
        data = client.get("/api/telemetry").json()

        assert data["model_name"] is None
        assert data["status"]["network_registered"] is False

    def test_populated_after_polling(self, client):
        """Test telemetry fills in once polling ran."""
        connect_and_poll(client)

        deadline = time.monotonic() + 2.0
        data = client.get("/api/telemetry").json()
        while data["rsrp"] is None and time.monotonic() < deadline:
            time.sleep(0.01)
            data = client.get("/api/telemetry").json()

        assert data["model_name"] == "NTN-M1"
        assert data["imsi"] == "001010123456789"
        assert data["rsrp"] == "-95"
        assert data["status"]["at_ready"] is True
        assert data["last_updated"] is not None


class TestLogsEndpoints:
    """Tests for /api/logs."""

    def test_logs_after_connect(self, client):
        """Test the feed carries handshake events without raw bytes."""
        connect_and_poll(client)

        data = client.get("/api/logs").json()
        messages = [e["message"] for e in data["events"]]

        assert data["count"] == len(data["events"])
        assert "Dongle unlocked successfully" in messages
        assert all("data" not in e for e in data["events"])

    def test_logs_limit(self, client):
        """Test limit returns only the newest events."""
        connect_and_poll(client)

        data = client.get("/api/logs", params={"limit": 2}).json()

        assert data["count"] == 2

    def test_logs_invalid_limit(self, client):
        """Test limit must be positive."""
        assert client.get("/api/logs", params={"limit": 0}).status_code == 422

    def test_clear_logs(self, client):
        """Test DELETE empties the feed."""
        client.post("/api/connect")
        client.post("/api/disconnect")

        response = client.delete("/api/logs")

        assert response.status_code == 200
        assert client.get("/api/logs").json()["count"] == 0


class TestConfigEndpoint:
    """Tests for POST /api/config."""

    payload = {"apn": "internet.ntn", "remote_ip": "203.0.113.10", "remote_port": "5683"}

    def test_config_not_polling(self, client):
        """Test apply is refused without a polling session."""
        response = client.post("/api/config", json=self.payload)

        assert response.status_code == 503

    def test_config_applied(self, client, dongle):
        """Test the four configuration frames are written."""
        connect_and_poll(client)

        response = client.post("/api/config", json=self.payload)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["config"]["local_port"] == "55001"

        config_writes = [
            w for w in dongle.writes_with_function(FunctionCode.WRITE_MULTIPLE_REGISTERS) if w[2] == 0xC3
        ]
        assert [w[2:4].hex() for w in config_writes] == ["c3b8", "c3bb", "c3ca", "c3d5"]

    def test_config_value_too_long(self, client):
        """Test an oversized value returns 400."""
        connect_and_poll(client)

        response = client.post("/api/config", json={**self.payload, "apn": "x" * 40})

        assert response.status_code == 400

    def test_config_missing_field(self, client):
        """Test request validation."""
        response = client.post("/api/config", json={"apn": "internet"})

        assert response.status_code == 422
