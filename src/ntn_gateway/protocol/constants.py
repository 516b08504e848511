"""Protocol constants for NTN dongle communication."""

from enum import Enum, IntEnum

# ============================================================================
# Frame Structure
# ============================================================================

FRAME_MIN_LEN = 5  # UNIT(1) + FUNC(1) + BYTE_COUNT(1) + CRC(2)
FRAME_MAX_LEN = 256  # Modbus-RTU ADU limit
CRC_LEN = 2
EXCEPTION_FLAG = 0x80

# ============================================================================
# Device
# ============================================================================

UNIT_ID = 1
BAUD_RATE = 115200


class FunctionCode(IntEnum):
    """Modbus function codes used by the dongle."""

    READ_HOLDING_REGISTERS = 0x03
    READ_INPUT_REGISTERS = 0x04
    WRITE_SINGLE_REGISTER = 0x06
    WRITE_MULTIPLE_REGISTERS = 0x10


READ_FUNCTIONS = (FunctionCode.READ_HOLDING_REGISTERS, FunctionCode.READ_INPUT_REGISTERS)

# ============================================================================
# Register Map
# ============================================================================

ADDR_PASSWORD = 0x0000
ADDR_MODEL_NAME = 0xEA66
ADDR_FW_VERSION = 0xEA6B
ADDR_STATUS = 0xEA71
ADDR_IMSI = 0xEB00
ADDR_SINR = 0xEB13
ADDR_RSRP = 0xEB15

PASSWORD_REGISTERS = 4
MODEL_NAME_REGISTERS = 5
FW_VERSION_REGISTERS = 2
STATUS_REGISTERS = 1
IMSI_REGISTERS = 8
SINR_REGISTERS = 2
RSRP_REGISTERS = 2

# Configuration fields: (address, width in registers)
ADDR_REMOTE_PORT = 0xC3B8
ADDR_APN = 0xC3BB
ADDR_REMOTE_IP = 0xC3CA
ADDR_LOCAL_PORT = 0xC3D5

REMOTE_PORT_REGISTERS = ADDR_APN - ADDR_REMOTE_PORT  # 3
APN_REGISTERS = ADDR_REMOTE_IP - ADDR_APN  # 15
REMOTE_IP_REGISTERS = ADDR_LOCAL_PORT - ADDR_REMOTE_IP  # 11
LOCAL_PORT_REGISTERS = 3

DEFAULT_LOCAL_PORT = "55001"

# ============================================================================
# Status Word Bits
# ============================================================================

STATUS_AT_READY = 0x01
STATUS_DOWNLINK_READY = 0x02
STATUS_SIM_READY = 0x04
STATUS_NETWORK_REGISTERED = 0x08

# ============================================================================
# Commands
# ============================================================================


class Command(str, Enum):
    """Commands the gateway issues; the pending one keys response decoding."""

    UNLOCK_WRITE = "UNLOCK_WRITE"
    VERIFY_MODEL = "VERIFY_MODEL"
    READ_MODEL = "READ_MODEL"
    READ_FIRMWARE = "READ_FIRMWARE"
    READ_IMSI = "READ_IMSI"
    READ_STATUS = "READ_STATUS"
    READ_SINR = "READ_SINR"
    READ_RSRP = "READ_RSRP"
    WRITE_CONFIG = "WRITE_CONFIG"

    @property
    def is_write(self) -> bool:
        return self in (Command.UNLOCK_WRITE, Command.WRITE_CONFIG)

    @property
    def expected_function(self) -> FunctionCode:
        """Function code of a well-formed reply to this command."""
        if self.is_write:
            return FunctionCode.WRITE_MULTIPLE_REGISTERS
        return FunctionCode.READ_INPUT_REGISTERS


# Read commands: (start address, register count)
READ_REGISTERS = {
    Command.VERIFY_MODEL: (ADDR_MODEL_NAME, MODEL_NAME_REGISTERS),
    Command.READ_MODEL: (ADDR_MODEL_NAME, MODEL_NAME_REGISTERS),
    Command.READ_FIRMWARE: (ADDR_FW_VERSION, FW_VERSION_REGISTERS),
    Command.READ_IMSI: (ADDR_IMSI, IMSI_REGISTERS),
    Command.READ_STATUS: (ADDR_STATUS, STATUS_REGISTERS),
    Command.READ_SINR: (ADDR_SINR, SINR_REGISTERS),
    Command.READ_RSRP: (ADDR_RSRP, RSRP_REGISTERS),
}


class SessionState(str, Enum):
    """Lifecycle states of a dongle session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    POLLING = "polling"
    CLOSING = "closing"
    DISCONNECTED = "disconnected"
    FAULTED = "faulted"


# ============================================================================
# Timing (seconds)
# ============================================================================

SERIAL_TIMEOUT = 0.2  # Serial read poll timeout
STARTUP_DELAY = 0.5  # Settle time between port open and first unlock attempt
UNLOCK_ATTEMPTS = 3
UNLOCK_SETTLE_DELAY = 0.3  # After password write, before verification read
UNLOCK_VERIFY_TIMEOUT = 0.5  # Wait for verification reply
STATIC_STEP_DELAY = 0.2  # Between static info reads
STATUS_STEP_DELAY = 0.15  # Between status reads
CONFIG_STEP_DELAY = 0.2  # Between configuration writes
POLL_INTERVAL = 3.0  # Status poll period

LOG_CAPACITY = 100
