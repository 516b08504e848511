"""Async-safe telemetry snapshot store."""

import asyncio
from datetime import datetime
from typing import Any

from ntn_gateway.core.models import DeviceStatus, TelemetrySnapshot


class TelemetryCache:
    """Holds the latest TelemetrySnapshot for one session.

    Updates are partial merges under an asyncio.Lock; readers always get
    an independent copy.
    """

    def __init__(self) -> None:
        """Initialize with an empty snapshot."""
        self._lock = asyncio.Lock()
        self._snapshot = TelemetrySnapshot()

    async def get(self) -> TelemetrySnapshot:
        """Get a copy of the current snapshot."""
        async with self._lock:
            return self._snapshot.model_copy(deep=True)

    async def merge(self, updates: dict[str, Any]) -> TelemetrySnapshot:
        """Merge a partial update; untouched fields are preserved.

        Args:
            updates: Snapshot field names to new values. A ``status`` value
                may be a dict of flags or a DeviceStatus.

        Returns:
            Copy of the merged snapshot.
        """
        async with self._lock:
            updates = dict(updates)
            status = updates.get("status")
            if isinstance(status, dict):
                updates["status"] = DeviceStatus(**status)
            updates["last_updated"] = datetime.now()
            self._snapshot = self._snapshot.model_copy(update=updates)
            return self._snapshot.model_copy(deep=True)

    async def reset(self) -> None:
        """Replace the snapshot wholesale (new session)."""
        async with self._lock:
            self._snapshot = TelemetrySnapshot()

    @property
    def last_update(self) -> datetime | None:
        """Get timestamp of last merged update."""
        return self._snapshot.last_updated

    @property
    def snapshot(self) -> TelemetrySnapshot:
        """Copy of the snapshot without awaiting the lock."""
        return self._snapshot.model_copy(deep=True)
