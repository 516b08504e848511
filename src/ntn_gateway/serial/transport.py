"""Byte-stream transport contract consumed by the session engine."""

from contextlib import AbstractAsyncContextManager
from typing import Protocol, runtime_checkable


@runtime_checkable
class Transport(Protocol):
    """An opened, bidirectional byte stream.

    ``read()`` blocks until data arrives and returns:

    - non-empty bytes: a chunk,
    - ``b""``: the poll timed out with nothing received,
    - ``None``: end of stream (closed or read cancelled).

    ``cancel_read()`` unblocks a pending ``read()``. ``reader()`` grants
    exclusive read access; ``close()`` must not be called while it is held.
    """

    @property
    def is_open(self) -> bool: ...

    async def open(self, baudrate: int) -> None:
        """Open the stream. Raises TransportOpenError."""
        ...

    async def close(self) -> None:
        """Close the stream. Idempotent."""
        ...

    async def write(self, data: bytes) -> None:
        """Hand ``data`` to the stream. Raises TransportIoError."""
        ...

    async def read(self) -> bytes | None:
        """Blocking read. Raises TransportIoError."""
        ...

    def cancel_read(self) -> None:
        """Unblock a pending read; it returns None."""
        ...

    def reader(self) -> AbstractAsyncContextManager[None]:
        """Exclusive read access for the duration of the context."""
        ...
