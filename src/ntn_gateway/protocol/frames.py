"""Frame construction and parsing for the Modbus-RTU subset used by the dongle."""

import struct

from ntn_gateway.protocol.constants import (
    CRC_LEN,
    EXCEPTION_FLAG,
    FRAME_MIN_LEN,
    READ_FUNCTIONS,
    FunctionCode,
)
from ntn_gateway.protocol.crc import calculate_crc16


# UNIT FUNC ADDR(2) COUNT(2) CRC(2)
READ_REQUEST_LEN = 8


class CodecError(ValueError):
    """Raised when received bytes are not a valid frame."""


class ShortFrameError(CodecError):
    """Frame is shorter than the smallest legal response."""


class CrcMismatchError(CodecError):
    """Trailing CRC does not match the frame contents."""


def _check_u16(name: str, value: int) -> None:
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"{name} out of range for u16: {value}")


def _append_crc(body: bytes) -> bytes:
    """Append the CRC trailer (low byte first)."""
    return body + struct.pack("<H", calculate_crc16(body))


def encode_read_registers(unit_id: int, function_code: int, start_address: int, count: int) -> bytes:
    """
    Build a read request for holding (0x03) or input (0x04) registers.

    Frame structure:
    [UNIT][FUNC][ADDR_H][ADDR_L][COUNT_H][COUNT_L][CRC_L][CRC_H]

    Args:
        unit_id: Modbus unit identifier
        function_code: READ_HOLDING_REGISTERS or READ_INPUT_REGISTERS
        start_address: First register address
        count: Number of registers to read (>= 1)

    Returns:
        Complete frame as bytes

    Raises:
        ValueError: On a zero count or out-of-range field.

    Example:
        >>> encode_read_registers(1, 0x03, 0x0000, 10).hex()
        '01030000000ac5cd'
    """
    if function_code not in READ_FUNCTIONS:
        raise ValueError(f"Not a register read function: 0x{function_code:02X}")
    if count == 0:
        raise ValueError("Register count must be at least 1")
    _check_u16("start_address", start_address)
    _check_u16("count", count)

    body = struct.pack(">BBHH", unit_id, function_code, start_address, count)
    return _append_crc(body)


def encode_write_multiple_registers(unit_id: int, start_address: int, values: list[int]) -> bytes:
    """
    Build a Write Multiple Registers (0x10) request.

    Frame structure:
    [UNIT][0x10][ADDR_H][ADDR_L][QTY_H][QTY_L][BYTE_COUNT][VALUES (BE)...][CRC_L][CRC_H]

    Args:
        unit_id: Modbus unit identifier
        start_address: First register address
        values: Register values, each a u16

    Returns:
        Complete frame as bytes

    Raises:
        ValueError: If values is empty or a field is out of range.
    """
    if not values:
        raise ValueError("At least one register value is required")
    _check_u16("start_address", start_address)
    for value in values:
        _check_u16("register value", value)

    byte_count = 2 * len(values)
    if byte_count > 0xFF:
        raise ValueError(f"Too many registers for one write: {len(values)}")

    body = struct.pack(
        f">BBHHB{len(values)}H",
        unit_id,
        FunctionCode.WRITE_MULTIPLE_REGISTERS,
        start_address,
        len(values),
        byte_count,
        *values,
    )
    return _append_crc(body)


class DecodedFrame:
    """
    A validated response frame.

    Attributes:
        unit_id: Responding unit
        function_code: Function code byte (exception flag included)
        payload: Frame data; for register read responses the leading
            byte-count field is stripped so only register bytes remain,
            read requests keep address and count
    """

    def __init__(self, unit_id: int, function_code: int, payload: bytes = b""):
        self.unit_id = unit_id
        self.function_code = function_code
        self.payload = payload

    @property
    def is_exception(self) -> bool:
        """Whether this is a Modbus exception response."""
        return bool(self.function_code & EXCEPTION_FLAG)

    @property
    def registers(self) -> list[int]:
        """Payload as big-endian 16-bit registers (a trailing odd byte is dropped)."""
        usable = len(self.payload) - (len(self.payload) % 2)
        return [struct.unpack(">H", self.payload[i : i + 2])[0] for i in range(0, usable, 2)]

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"DecodedFrame(unit={self.unit_id}, func=0x{self.function_code:02X}, payload_len={len(self.payload)})"


def decode_and_validate(data: bytes) -> DecodedFrame:
    """
    Validate a received frame and split it into its fields.

    Args:
        data: Raw frame bytes including CRC trailer

    Returns:
        DecodedFrame

    Raises:
        ShortFrameError: Fewer than 5 bytes, or a read response whose
            byte-count field claims more data than the frame carries.
        CrcMismatchError: CRC trailer does not match.
    """
    if len(data) < FRAME_MIN_LEN:
        raise ShortFrameError(f"Frame too short: {len(data)} bytes")

    body = bytes(data[:-CRC_LEN])
    expected_crc = struct.unpack("<H", data[-CRC_LEN:])[0]
    calculated_crc = calculate_crc16(body)
    if expected_crc != calculated_crc:
        raise CrcMismatchError(f"CRC mismatch: frame has 0x{expected_crc:04X}, calculated 0x{calculated_crc:04X}")

    unit_id = body[0]
    function_code = body[1]

    if function_code in READ_FUNCTIONS and len(data) == READ_REQUEST_LEN:
        # A read request (ADDR, COUNT). A response of this length would
        # need an odd byte count, which register reads never produce.
        payload = body[2:]
    elif function_code in READ_FUNCTIONS:
        byte_count = body[2]
        payload = body[3 : 3 + byte_count]
        if len(payload) < byte_count:
            raise ShortFrameError(f"Read response declares {byte_count} bytes but carries {len(payload)}")
    else:
        payload = body[2:]

    return DecodedFrame(unit_id=unit_id, function_code=function_code, payload=payload)


def hex_string(data: bytes) -> str:
    """Uppercase, space-separated hex dump (``01 04 EA 66``)."""
    return " ".join(f"{b:02X}" for b in data)
