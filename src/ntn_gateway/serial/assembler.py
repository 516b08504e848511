"""Modbus-RTU frame reassembly from transport chunks."""

import logging
import time

from ntn_gateway.protocol.constants import (
    CRC_LEN,
    EXCEPTION_FLAG,
    FRAME_MAX_LEN,
    READ_FUNCTIONS,
    FunctionCode,
)

logger = logging.getLogger(__name__)

# RTU frames are delimited by line silence; anything older than this is
# a finished (if broken) frame, not the start of the next chunk's frame.
FRAME_GAP = 0.05

_FIXED_LENGTHS = {
    FunctionCode.WRITE_SINGLE_REGISTER: 8,  # UNIT FUNC ADDR(2) VALUE(2) CRC(2)
    FunctionCode.WRITE_MULTIPLE_REGISTERS: 8,  # UNIT FUNC ADDR(2) QTY(2) CRC(2)
}


def expected_length(buffer: bytes | bytearray) -> int | None:
    """Total length of the response frame starting at ``buffer[0]``.

    Returns:
        Frame length in bytes, or None if the header is still incomplete.
        For function codes the gateway does not use, the whole buffer is
        taken as the frame.
    """
    if len(buffer) < 2:
        return None

    function_code = buffer[1]
    if function_code & EXCEPTION_FLAG:
        return 3 + CRC_LEN
    if function_code in READ_FUNCTIONS:
        if len(buffer) < 3:
            return None
        return 3 + buffer[2] + CRC_LEN
    return _FIXED_LENGTHS.get(function_code, len(buffer))


class FrameAssembler:
    """Splits a byte stream into candidate frames.

    Frames arriving whole in one chunk pass straight through. A frame split
    across chunks is held until complete; a partial frame followed by more
    than ``gap`` seconds of silence is released as-is so validation can
    reject it.
    """

    def __init__(self, gap: float = FRAME_GAP) -> None:
        self.gap = gap
        self._buffer = bytearray()
        self._last_feed: float | None = None
        self._stats = {
            "chunks": 0,
            "frames": 0,
            "bytes": 0,
        }

    @property
    def stats(self) -> dict:
        """Get assembler statistics."""
        return self._stats.copy()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet released."""
        return len(self._buffer)

    def feed(self, chunk: bytes, now: float | None = None) -> list[bytes]:
        """Add a chunk and return every candidate frame it completes."""
        now = time.monotonic() if now is None else now
        frames: list[bytes] = []

        if self._buffer and self._last_feed is not None and now - self._last_feed > self.gap:
            logger.debug("Releasing %d stale bytes after line silence", len(self._buffer))
            frames.append(bytes(self._buffer))
            self._buffer.clear()

        self._last_feed = now
        self._buffer.extend(chunk)
        self._stats["chunks"] += 1
        self._stats["bytes"] += len(chunk)

        while self._buffer:
            length = expected_length(self._buffer)
            if length is None:
                break
            if length > FRAME_MAX_LEN:
                length = len(self._buffer)
            if len(self._buffer) < length:
                break
            frames.append(bytes(self._buffer[:length]))
            del self._buffer[:length]

        self._stats["frames"] += len(frames)
        return frames

    def reset(self) -> None:
        """Clear the buffer."""
        self._buffer.clear()
        self._last_feed = None
