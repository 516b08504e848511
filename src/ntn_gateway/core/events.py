"""Bounded event log for the dongle session."""

import logging
from collections import deque

from ntn_gateway.core.models import LogDirection, LogEvent
from ntn_gateway.protocol.constants import LOG_CAPACITY

logger = logging.getLogger(__name__)


class EventLog:
    """Append-only event feed with fixed capacity.

    Oldest events are dropped first once ``capacity`` is reached. Every
    event is mirrored to the module logger.
    """

    def __init__(self, capacity: int = LOG_CAPACITY) -> None:
        self._events: deque[LogEvent] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._events.maxlen or 0

    @property
    def count(self) -> int:
        return len(self._events)

    def add(
        self,
        direction: LogDirection,
        message: str,
        data: bytes | None = None,
        is_error: bool = False,
    ) -> LogEvent:
        """Append an event and mirror it to the logger."""
        event = LogEvent(direction=direction, message=message, data=data, is_error=is_error)
        self._events.append(event)

        if is_error:
            logger.warning("[%s] %s", direction.value, message)
        elif direction is LogDirection.SYSTEM:
            logger.info("[%s] %s", direction.value, message)
        else:
            logger.debug("[%s] %s", direction.value, message)
        return event

    def sent(self, data: bytes, message: str) -> LogEvent:
        return self.add(LogDirection.SENT, message, data=data)

    def received(self, data: bytes, message: str, is_error: bool = False) -> LogEvent:
        return self.add(LogDirection.RECEIVED, message, data=data, is_error=is_error)

    def system(self, message: str, is_error: bool = False) -> LogEvent:
        return self.add(LogDirection.SYSTEM, message, is_error=is_error)

    def get_all(self) -> list[LogEvent]:
        """Events, oldest first."""
        return list(self._events)

    def recent(self, limit: int) -> list[LogEvent]:
        """The newest ``limit`` events, oldest first."""
        if limit <= 0:
            return []
        return list(self._events)[-limit:]

    def clear(self) -> None:
        self._events.clear()
