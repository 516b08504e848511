"""CRC-16 calculation for Modbus-RTU frames."""


def calculate_crc16(data: bytes) -> int:
    """
    Calculate the Modbus CRC-16 (ANSI, reflected polynomial 0xA001).

    - Register starts at 0xFFFF
    - Each byte is XORed into the low byte of the register
    - Eight rounds of shift-right, XOR 0xA001 when the shifted-out bit was set

    The result is transmitted low byte first.

    Args:
        data: Bytes to calculate CRC over

    Returns:
        16-bit CRC value

    Example:
        >>> calculate_crc16(b'')
        65535
    """
    crc = 0xFFFF

    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 0x0001:
                crc = (crc >> 1) ^ 0xA001
            else:
                crc >>= 1

    return crc


def verify_crc16(data: bytes, expected_crc: int) -> bool:
    """
    Verify CRC-16 matches expected value.

    Args:
        data: Data bytes (excluding CRC)
        expected_crc: Expected CRC value

    Returns:
        True if CRC matches, False otherwise
    """
    return calculate_crc16(data) == expected_crc
