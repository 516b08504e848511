"""Telemetry decoding for dongle responses.

Responses carry no request identifier, so a payload is only meaningful
relative to the command that was pending when it arrived.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from ntn_gateway.protocol.constants import (
    STATUS_AT_READY,
    STATUS_DOWNLINK_READY,
    STATUS_NETWORK_REGISTERED,
    STATUS_SIM_READY,
    Command,
)
from ntn_gateway.protocol.frames import DecodedFrame

logger = logging.getLogger(__name__)

# Command -> (snapshot field, log label, unit suffix)
STRING_FIELDS = {
    Command.READ_MODEL: ("model_name", "Model", ""),
    Command.READ_FIRMWARE: ("firmware_version", "FW", ""),
    Command.READ_IMSI: ("imsi", "IMSI", ""),
    Command.READ_SINR: ("sinr", "SINR", " dB"),
    Command.READ_RSRP: ("rsrp", "RSRP", " dBm"),
}


@dataclass
class DecodeResult:
    """Outcome of interpreting one response.

    Attributes:
        command: Command the response was attributed to.
        updates: Snapshot fields to merge (partial update).
        description: Human-readable interpretation for the event log.
        verified: Handshake outcome for VERIFY_MODEL replies, else None.
        write_acknowledged: True for write acknowledgements.
    """

    command: Command
    updates: dict[str, Any] = field(default_factory=dict)
    description: str = ""
    verified: bool | None = None
    write_acknowledged: bool = False


def parse_modbus_string(registers: list[int]) -> str:
    """Decode ASCII packed two characters per register, high byte first.

    Zero bytes are padding and skipped wherever they appear; they do not
    terminate the string.

    Args:
        registers: 16-bit register values.

    Returns:
        Decoded, whitespace-trimmed string.

    Example:
        >>> parse_modbus_string([0x4142, 0x4300])
        'ABC'
    """
    chars = []
    for reg in registers:
        hi = (reg >> 8) & 0xFF
        lo = reg & 0xFF
        if hi:
            chars.append(chr(hi))
        if lo:
            chars.append(chr(lo))
    return "".join(chars).strip()


def encode_modbus_string(value: str, width: int) -> list[int]:
    """Pack an ASCII string into ``width`` registers, zero padded.

    Raises:
        ValueError: If the value is not ASCII or does not fit.
    """
    raw = value.encode("ascii")
    if len(raw) > width * 2:
        raise ValueError(f"Value {value!r} exceeds {width * 2} characters")
    raw = raw.ljust(width * 2, b"\x00")
    return [(raw[i] << 8) | raw[i + 1] for i in range(0, len(raw), 2)]


def decode_status(value: int) -> dict[str, bool]:
    """Split the status word into its flags; unknown bits are ignored."""
    return {
        "at_ready": bool(value & STATUS_AT_READY),
        "downlink_ready": bool(value & STATUS_DOWNLINK_READY),
        "sim_ready": bool(value & STATUS_SIM_READY),
        "network_registered": bool(value & STATUS_NETWORK_REGISTERED),
    }


def _describe_status(status: dict[str, bool]) -> str:
    return "Status: AT={}, DL={}, SIM={}, NET={}".format(
        "OK" if status["at_ready"] else "NO",
        "OK" if status["downlink_ready"] else "NO",
        "OK" if status["sim_ready"] else "NO",
        "REG" if status["network_registered"] else "NO",
    )


def interpret(pending: Command | None, frame: DecodedFrame) -> DecodeResult | None:
    """Interpret a validated response against the pending command.

    Args:
        pending: Command awaiting a response, or None.
        frame: Validated response frame.

    Returns:
        DecodeResult, or None when the response cannot be attributed
        (no pending command, exception reply, or unexpected function code).
    """
    if pending is None:
        logger.debug("Response 0x%02X with no pending command, ignoring", frame.function_code)
        return None

    if frame.is_exception:
        code = frame.payload[0] if frame.payload else 0
        logger.warning(
            "Exception response 0x%02X (code %d) while %s pending",
            frame.function_code,
            code,
            pending.value,
        )
        return None

    if frame.function_code != pending.expected_function:
        logger.debug(
            "Unexpected function 0x%02X while %s pending, ignoring",
            frame.function_code,
            pending.value,
        )
        return None

    if pending.is_write:
        result = DecodeResult(command=pending, description="Write Command Ack", write_acknowledged=True)
        if pending is Command.WRITE_CONFIG:
            result.updates["config_applied"] = True
        return result

    registers = frame.registers

    if pending is Command.READ_STATUS:
        if not registers:
            logger.debug("Empty status response, ignoring")
            return None
        status = decode_status(registers[0])
        return DecodeResult(command=pending, updates={"status": status}, description=_describe_status(status))

    if pending is Command.VERIFY_MODEL:
        model = parse_modbus_string(registers)
        if model:
            return DecodeResult(
                command=pending,
                updates={"model_name": model},
                description=f"Init Verification OK (Model: {model})",
                verified=True,
            )
        return DecodeResult(command=pending, description="Init Verification Failed", verified=False)

    field_name, label, suffix = STRING_FIELDS[pending]
    value = parse_modbus_string(registers)
    return DecodeResult(command=pending, updates={field_name: value}, description=f"{label}: {value}{suffix}")
