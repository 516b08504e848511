"""Serial port transport using direct pyserial.

Blocking reads run in a single-thread executor so the event loop stays
free; ``cancel_read()`` interrupts them on disconnect. Ports are opened
with ``serial.serial_for_url()``, so besides device paths any pyserial URL
handler works (``socket://host:port`` for a network serial bridge,
``loop://`` for loopback testing).
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager

import serial
from serial import SerialException

from ntn_gateway.core.errors import TransportIoError, TransportOpenError
from ntn_gateway.protocol.constants import SERIAL_TIMEOUT

logger = logging.getLogger(__name__)


class SerialTransport:
    """Transport over a pyserial port.

    Implements the ``ntn_gateway.serial.transport.Transport`` contract.
    """

    def __init__(self, port: str, timeout: float = SERIAL_TIMEOUT):
        """
        Initialize serial transport.

        Args:
            port: Serial port path or pyserial URL (e.g., '/dev/ttyUSB0')
            timeout: Read poll timeout in seconds; bounds how long a
                cancelled read can stay blocked
        """
        self.port = port
        self.timeout = timeout
        self.baudrate: int | None = None

        self._serial: serial.SerialBase | None = None
        self._read_cancelled = False
        self._reader_lock = asyncio.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="serial")

    @property
    def is_open(self) -> bool:
        """Check if the port is open."""
        return self._serial is not None and self._serial.is_open

    @property
    def reader_active(self) -> bool:
        """Whether a reader currently holds the port."""
        return self._reader_lock.locked()

    async def open(self, baudrate: int) -> None:
        """
        Open the serial port.

        Raises:
            TransportOpenError: If the port cannot be opened.
        """
        if self.is_open:
            logger.debug("Already open: %s", self.port)
            return

        logger.info("Opening serial port %s at %d baud", self.port, baudrate)
        try:
            port = serial.serial_for_url(self.port, do_not_open=True)
            port.baudrate = baudrate
            port.timeout = self.timeout
            port.open()
        except (OSError, ValueError, SerialException) as e:
            logger.error("Failed to open %s: %s", self.port, e)
            raise TransportOpenError(f"Failed to open {self.port}: {e}") from e

        self._serial = port
        self.baudrate = baudrate
        self._read_cancelled = False
        logger.info("Successfully opened %s", self.port)

    async def close(self) -> None:
        """
        Close the serial port. Safe to call when already closed.

        Raises:
            TransportIoError: If a reader still holds the port.
        """
        if self._serial is None:
            return

        if self.reader_active:
            raise TransportIoError("Cannot close port while a reader holds it")

        logger.info("Closing %s", self.port)
        try:
            if self._serial.is_open:
                self._serial.close()
        except (OSError, SerialException) as e:
            logger.error("Error closing serial port: %s", e)
        finally:
            self._serial = None
        logger.info("Closed %s", self.port)

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[None]:
        """Hold exclusive read access to the port."""
        if self.reader_active:
            raise TransportIoError("Port already has an active reader")
        async with self._reader_lock:
            self._read_cancelled = False
            yield

    def cancel_read(self) -> None:
        """Interrupt a blocked read; it returns None."""
        self._read_cancelled = True
        cancel = getattr(self._serial, "cancel_read", None)
        if cancel is not None:
            try:
                cancel()
            except (OSError, SerialException) as e:
                logger.debug("cancel_read failed (read will time out): %s", e)

    def _blocking_read(self) -> bytes | None:
        """Blocking read for use with run_in_executor.

        Uses a two-stage approach for fast reads:
        1. Wait for first byte (blocks up to self.timeout)
        2. Read all remaining bytes already in the OS buffer
        """
        port = self._serial
        if self._read_cancelled or port is None or not port.is_open:
            return None

        first = port.read(1)
        if not first:
            return None if self._read_cancelled else b""

        available = port.in_waiting
        if available > 0:
            return first + port.read(available)
        return first

    async def read(self) -> bytes | None:
        """
        Read the next chunk from the port.

        Returns:
            Bytes read, b"" on poll timeout, None once closed or cancelled

        Raises:
            TransportIoError: On a serial read failure
        """
        if self._read_cancelled or not self.is_open:
            return None

        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, self._blocking_read)
        except (OSError, SerialException) as e:
            error_str = str(e)
            # "device reports readiness to read but returned no data" is transient
            if "reports readiness" in error_str or "multiple access" in error_str:
                logger.warning("Transient serial error (will retry): %s", e)
                return b""
            logger.error("Read error: %s", e)
            raise TransportIoError(str(e)) from e

    async def write(self, data: bytes) -> None:
        """
        Write to the serial port. Returns once the bytes are handed to the OS.

        Raises:
            TransportIoError: If not open or the write fails
        """
        if not self.is_open or self._serial is None:
            raise TransportIoError("Serial port is not open")

        try:
            self._serial.write(data)
        except (OSError, SerialException) as e:
            logger.error("Write error: %s", e)
            raise TransportIoError(str(e)) from e
