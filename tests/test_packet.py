from __future__ import annotations

import struct

import pytest

from rtftp.errors import MalformedPacket
from rtftp.packet import (
    AckPacket,
    DataPacket,
    ErrorCode,
    ErrorPacket,
    Opcode,
    RequestPacket,
    decode,
    encode,
)


@pytest.mark.parametrize(
    "packet",
    [
        RequestPacket.read("boot.bin"),
        RequestPacket.write("dir/firmware.img", "OCTET"),
        DataPacket(1, b"hello"),
        DataPacket(7, b"x" * 512),
        DataPacket(65535, b""),
        AckPacket(0),
        AckPacket(65535),
        ErrorPacket(ErrorCode.FILE_NOT_FOUND, "File not found"),
        ErrorPacket(0, ""),
    ],
)
def test_roundtrip(packet):
    assert decode(encode(packet)) == packet


def test_wire_layout():
    assert encode(RequestPacket.read("a", "octet")) == b"\x00\x01a\x00octet\x00"
    assert encode(DataPacket(2, b"xy")) == b"\x00\x03\x00\x02xy"
    assert encode(AckPacket(258)) == b"\x00\x04\x01\x02"
    assert encode(ErrorPacket(ErrorCode.DISK_FULL, "full")) == b"\x00\x05\x00\x03full\x00"


def test_request_mode_kept_as_sent():
    p = decode(b"\x00\x02f.txt\x00NetAscii\x00")
    assert isinstance(p, RequestPacket)
    assert p.opcode == Opcode.WRQ
    assert p.mode == "NetAscii"
    assert not p.is_read


@pytest.mark.parametrize(
    "raw",
    [
        b"",
        b"\x00",
        b"\x00\x00\x00\x00",
        b"\x00\x06\x00\x00",
        b"\x00\x01file\x00octet",  # missing terminator
        b"\x00\x01file\x00",  # missing mode
        b"\x00\x01\x00octet\x00",  # empty filename
        b"\x00\x01file\x00octet\x00blksize\x00512\x00",
        b"\x00\x03\x00",
        b"\x00\x03\x00\x01" + b"x" * 513,
        b"\x00\x04\x00",
        b"\x00\x04\x00\x01\x00",
        b"\x00\x05\x00",
    ],
)
def test_malformed(raw):
    with pytest.raises(MalformedPacket):
        decode(raw)


def test_error_without_terminator_is_tolerated():
    p = decode(struct.pack("!HH", 5, 2) + b"no terminator")
    assert p == ErrorPacket(ErrorCode.ACCESS_VIOLATION, "no terminator")


def test_data_final_flag():
    assert DataPacket(1, b"x" * 511).is_final
    assert not DataPacket(1, b"x" * 512).is_final


@pytest.mark.parametrize(
    "packet",
    [
        DataPacket(1, b"x" * 513),
        DataPacket(65536, b""),
        AckPacket(-1),
        RequestPacket.read("bad\x00name"),
    ],
)
def test_encode_rejects_invalid(packet):
    with pytest.raises(ValueError):
        encode(packet)
