"""Command/response correlation.

The dongle protocol has no sequence numbers: a reply is attributed to
whichever command was issued last. That rule lives here and nowhere else,
so a protocol variant with real request ids only has to replace this class.

Known limitation: a reply that arrives after the next command was issued
is attributed to the newer command. Duplicate replies are attributed twice.
"""

from ntn_gateway.protocol.constants import Command
from ntn_gateway.protocol.decoder import DecodeResult, interpret
from ntn_gateway.protocol.frames import DecodedFrame


class PendingCommand:
    """Single-slot correlation key.

    Only the driver calls ``expect()``/``clear()``; only the read loop calls
    ``resolve()``. Both run on one event loop and neither awaits while
    touching the slot, so each access is atomic.
    """

    def __init__(self) -> None:
        self._command: Command | None = None

    @property
    def current(self) -> Command | None:
        """Command awaiting its reply, if any."""
        return self._command

    def expect(self, command: Command) -> None:
        """Mark ``command`` as the one the next reply belongs to."""
        self._command = command

    def clear(self) -> None:
        self._command = None

    def resolve(self, frame: DecodedFrame) -> DecodeResult | None:
        """Attribute ``frame`` to the pending command and decode it.

        The slot is left untouched: a second reply before the next
        ``expect()`` is decoded against the same command.
        """
        return interpret(self._command, frame)
