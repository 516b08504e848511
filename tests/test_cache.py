"""Unit tests for the telemetry cache."""

import asyncio

import pytest

from ntn_gateway.core.cache import TelemetryCache
from ntn_gateway.core.models import DeviceStatus


class TestTelemetryCache:
    """Tests for TelemetryCache class."""

    @pytest.mark.asyncio
    async def test_init_empty(self):
        """Test cache starts with an empty snapshot."""
        cache = TelemetryCache()
        snapshot = await cache.get()

        assert snapshot.model_name is None
        assert snapshot.status == DeviceStatus()
        assert cache.last_update is None

    @pytest.mark.asyncio
    async def test_merge_preserves_other_fields(self):
        """Test a partial update leaves untouched fields alone."""
        cache = TelemetryCache()
        await cache.merge({"model_name": "NTN-M1"})
        await cache.merge({"rsrp": "-95"})

        snapshot = await cache.get()
        assert snapshot.model_name == "NTN-M1"
        assert snapshot.rsrp == "-95"

    @pytest.mark.asyncio
    async def test_merge_status_dict(self):
        """Test a status dict is converted to DeviceStatus."""
        cache = TelemetryCache()
        await cache.merge(
            {"status": {"at_ready": True, "downlink_ready": False, "sim_ready": True, "network_registered": True}}
        )

        snapshot = await cache.get()
        assert isinstance(snapshot.status, DeviceStatus)
        assert snapshot.status.sim_ready is True
        assert snapshot.status.downlink_ready is False

    @pytest.mark.asyncio
    async def test_merge_sets_last_updated(self):
        """Test merges stamp the snapshot."""
        cache = TelemetryCache()
        await cache.merge({"sinr": "7"})

        assert cache.last_update is not None

    @pytest.mark.asyncio
    async def test_get_returns_copy(self):
        """Test mutating a returned snapshot does not touch the cache."""
        cache = TelemetryCache()
        await cache.merge({"imsi": "001010123456789"})

        snapshot = await cache.get()
        snapshot.imsi = "tampered"
        snapshot.status.at_ready = True

        fresh = await cache.get()
        assert fresh.imsi == "001010123456789"
        assert fresh.status.at_ready is False

    @pytest.mark.asyncio
    async def test_reset(self):
        """Test reset drops all fields."""
        cache = TelemetryCache()
        await cache.merge({"model_name": "NTN-M1", "config_applied": True})
        await cache.reset()

        snapshot = await cache.get()
        assert snapshot.model_name is None
        assert snapshot.config_applied is False
        assert cache.last_update is None

    @pytest.mark.asyncio
    async def test_concurrent_merges(self):
        """Test concurrent merges all land."""
        cache = TelemetryCache()
        await asyncio.gather(
            cache.merge({"model_name": "NTN-M1"}),
            cache.merge({"firmware_version": "1.02"}),
            cache.merge({"imsi": "001010123456789"}),
        )

        snapshot = await cache.get()
        assert snapshot.model_name == "NTN-M1"
        assert snapshot.firmware_version == "1.02"
        assert snapshot.imsi == "001010123456789"

    @pytest.mark.asyncio
    async def test_snapshot_property(self):
        """Test the lock-free snapshot accessor."""
        cache = TelemetryCache()
        await cache.merge({"rsrp": "-101"})

        assert cache.snapshot.rsrp == "-101"
