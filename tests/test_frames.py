"""Unit tests for frame construction and parsing."""

import struct

import pytest

from fakes import read_response, with_crc, write_ack
from ntn_gateway.protocol.constants import FunctionCode
from ntn_gateway.protocol.crc import calculate_crc16
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


class TestEncodeRead:
    """Tests for read request construction."""

    def test_known_vector(self):
        """Test the canonical read-holding request."""
        frame = encode_read_registers(1, FunctionCode.READ_HOLDING_REGISTERS, 0x0000, 10)
        assert frame == bytes.fromhex("01030000000AC5CD")

    def test_input_register_read_layout(self):
        """Test field placement for an input register read."""
        frame = encode_read_registers(1, FunctionCode.READ_INPUT_REGISTERS, 0xEA66, 5)

        assert len(frame) == 8
        assert frame[:6] == bytes([0x01, 0x04, 0xEA, 0x66, 0x00, 0x05])
        assert struct.unpack("<H", frame[6:])[0] == calculate_crc16(frame[:6])

    def test_zero_count_rejected(self):
        """Test a zero register count is an error."""
        with pytest.raises(ValueError):
            encode_read_registers(1, FunctionCode.READ_INPUT_REGISTERS, 0xEA71, 0)

    def test_non_read_function_rejected(self):
        """Test only 0x03/0x04 are accepted."""
        with pytest.raises(ValueError):
            encode_read_registers(1, FunctionCode.WRITE_MULTIPLE_REGISTERS, 0xEA71, 1)

    def test_address_out_of_range(self):
        """Test addresses beyond u16 are rejected."""
        with pytest.raises(ValueError):
            encode_read_registers(1, FunctionCode.READ_INPUT_REGISTERS, 0x10000, 1)


class TestEncodeWrite:
    """Tests for Write Multiple Registers construction."""

    def test_password_write(self):
        """Test the four-register password write layout."""
        frame = encode_write_multiple_registers(1, 0x0000, [0, 0, 0, 0])

        assert frame[:7] == bytes([0x01, 0x10, 0x00, 0x00, 0x00, 0x04, 0x08])
        assert frame[7:15] == bytes(8)
        assert len(frame) == 9 + 8

    def test_values_big_endian(self):
        """Test register values are big-endian."""
        frame = encode_write_multiple_registers(1, 0xC3B8, [0x3132, 0x3300])
        assert frame[7:11] == bytes([0x31, 0x32, 0x33, 0x00])

    def test_crc_trailer_valid(self):
        """Test the trailer is the CRC of everything before it."""
        frame = encode_write_multiple_registers(1, 0xC3BB, [0x4142] * 15)
        assert struct.unpack("<H", frame[-2:])[0] == calculate_crc16(frame[:-2])

    def test_empty_values_rejected(self):
        """Test writing zero registers is an error."""
        with pytest.raises(ValueError):
            encode_write_multiple_registers(1, 0xC3B8, [])

    def test_value_out_of_range(self):
        """Test a register value above 0xFFFF is rejected."""
        with pytest.raises(ValueError):
            encode_write_multiple_registers(1, 0xC3B8, [0x1FFFF])


class TestDecode:
    """Tests for decode_and_validate."""

    def test_read_response(self):
        """Test a read response keeps only register bytes in the payload."""
        frame = decode_and_validate(read_response([0x4142, 0x4300]))

        assert frame.unit_id == 1
        assert frame.function_code == FunctionCode.READ_INPUT_REGISTERS
        assert frame.payload == b"\x41\x42\x43\x00"
        assert frame.registers == [0x4142, 0x4300]
        assert not frame.is_exception

    def test_write_ack(self):
        """Test a write acknowledgement keeps address and quantity."""
        frame = decode_and_validate(write_ack(0x0000, 4))

        assert frame.function_code == FunctionCode.WRITE_MULTIPLE_REGISTERS
        assert frame.payload == b"\x00\x00\x00\x04"

    def test_exception_response(self):
        """Test exception responses are flagged."""
        frame = decode_and_validate(with_crc(bytes([0x01, 0x84, 0x02])))

        assert frame.is_exception
        assert frame.payload == b"\x02"

    def test_short_frame(self):
        """Test frames under five bytes are rejected."""
        with pytest.raises(ShortFrameError):
            decode_and_validate(b"\x01\x04\x00\x00")

    def test_empty_frame(self):
        """Test empty input is rejected."""
        with pytest.raises(ShortFrameError):
            decode_and_validate(b"")

    def test_byte_count_exceeds_data(self):
        """Test a read response claiming more data than it carries."""
        with pytest.raises(ShortFrameError):
            decode_and_validate(with_crc(bytes([0x01, 0x04, 0x04, 0x00, 0x01])))

    def test_crc_mismatch(self):
        """Test a corrupted trailer is rejected."""
        data = bytearray(read_response([0x0001]))
        data[-1] ^= 0xFF
        with pytest.raises(CrcMismatchError):
            decode_and_validate(bytes(data))

    @pytest.mark.parametrize(
        "frame",
        [
            read_response([0x0001]),
            encode_read_registers(1, FunctionCode.READ_INPUT_REGISTERS, 0xEA66, 5),
            encode_read_registers(1, FunctionCode.READ_HOLDING_REGISTERS, 0x0000, 10),
        ],
        ids=["response", "read-input-request", "read-holding-request"],
    )
    @pytest.mark.parametrize("position", [0, 1, 2, 3, 4])
    def test_single_byte_flip_detected(self, frame, position):
        """Test flipping any body byte breaks the CRC."""
        data = bytearray(frame)
        data[position] ^= 0x01
        with pytest.raises(CrcMismatchError):
            decode_and_validate(bytes(data))

    def test_codec_errors_are_value_errors(self):
        """Test the codec error hierarchy."""
        assert issubclass(ShortFrameError, CodecError)
        assert issubclass(CrcMismatchError, CodecError)
        assert issubclass(CodecError, ValueError)

    def test_request_round_trip(self):
        """Test an encoded request validates and exposes its fields."""
        frame = decode_and_validate(encode_write_multiple_registers(1, 0xC3D5, [0x3535, 0x3030, 0x3100]))

        assert frame.function_code == FunctionCode.WRITE_MULTIPLE_REGISTERS
        assert frame.payload[:4] == b"\xc3\xd5\x00\x03"

    @pytest.mark.parametrize(
        "function_code,start,count",
        [
            (FunctionCode.READ_INPUT_REGISTERS, 0x0000, 10),
            (FunctionCode.READ_INPUT_REGISTERS, 0xEA66, 5),
            (FunctionCode.READ_INPUT_REGISTERS, 0xEB00, 8),
            (FunctionCode.READ_HOLDING_REGISTERS, 0xC3BB, 15),
        ],
    )
    def test_read_request_round_trip(self, function_code, start, count):
        """Test an encoded read request decodes back to its address and count."""
        encoded = encode_read_registers(1, function_code, start, count)
        frame = decode_and_validate(encoded)

        assert frame.function_code == function_code
        assert frame.payload == encoded[2:-2]
        assert frame.registers == [start, count]


class TestDecodedFrame:
    """Tests for DecodedFrame helpers."""

    def test_registers_drop_odd_byte(self):
        """Test a trailing odd byte is ignored."""
        frame = DecodedFrame(1, 0x04, b"\x00\x01\x02")
        assert frame.registers == [1]

    def test_repr(self):
        """Test debug representation."""
        assert "0x04" in repr(DecodedFrame(1, 0x04, b""))


def test_hex_string():
    """Test the log hex format."""
    assert hex_string(b"\x01\x04\xea\x66") == "01 04 EA 66"
    assert hex_string(b"") == ""
