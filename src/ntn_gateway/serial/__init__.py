"""Serial communication layer."""

from ntn_gateway.serial.assembler import FrameAssembler
from ntn_gateway.serial.connection import SerialTransport
from ntn_gateway.serial.transport import Transport

__all__ = ["FrameAssembler", "SerialTransport", "Transport"]
