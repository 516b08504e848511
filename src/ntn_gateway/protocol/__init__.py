"""NTN dongle protocol implementation."""

from ntn_gateway.protocol.constants import (
    UNIT_ID,
    Command,
    FunctionCode,
    SessionState,
)
from ntn_gateway.protocol.crc import calculate_crc16, verify_crc16
from ntn_gateway.protocol.frames import (
    CodecError,
    CrcMismatchError,
    DecodedFrame,
    ShortFrameError,
    decode_and_validate,
    encode_read_registers,
    encode_write_multiple_registers,
    hex_string,
)

# SessionEngine imported lazily to avoid circular import with core.models
# (core.models -> protocol.constants -> protocol.__init__ -> session -> core.models)


def __getattr__(name: str):
    if name == "SessionEngine":
        from ntn_gateway.protocol.session import SessionEngine

        return SessionEngine
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "SessionEngine",
    "calculate_crc16",
    "verify_crc16",
    "encode_read_registers",
    "encode_write_multiple_registers",
    "decode_and_validate",
    "hex_string",
    "DecodedFrame",
    "CodecError",
    "CrcMismatchError",
    "ShortFrameError",
    "Command",
    "FunctionCode",
    "SessionState",
    "UNIT_ID",
]
