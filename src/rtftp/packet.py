from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Union

from .constants import (
    BLOCK_SIZE,
    ERR_ACCESS_VIOLATION,
    ERR_DISK_FULL,
    ERR_FILE_EXISTS,
    ERR_FILE_NOT_FOUND,
    ERR_ILLEGAL_OPERATION,
    ERR_NO_SUCH_USER,
    ERR_NOT_DEFINED,
    ERR_UNKNOWN_TID,
    HEADER_SIZE,
    MAX_BLOCK_NUMBER,
    MAX_DATAGRAM,
    MODE_OCTET,
    OPCODE_ACK,
    OPCODE_DATA,
    OPCODE_ERROR,
    OPCODE_RRQ,
    OPCODE_WRQ,
)
from .errors import MalformedPacket

HEADER = struct.Struct("!HH")
OPCODE = struct.Struct("!H")


class Opcode(enum.IntEnum):
    RRQ = OPCODE_RRQ
    WRQ = OPCODE_WRQ
    DATA = OPCODE_DATA
    ACK = OPCODE_ACK
    ERROR = OPCODE_ERROR


class ErrorCode(enum.IntEnum):
    NOT_DEFINED = ERR_NOT_DEFINED
    FILE_NOT_FOUND = ERR_FILE_NOT_FOUND
    ACCESS_VIOLATION = ERR_ACCESS_VIOLATION
    DISK_FULL = ERR_DISK_FULL
    ILLEGAL_OPERATION = ERR_ILLEGAL_OPERATION
    UNKNOWN_TID = ERR_UNKNOWN_TID
    FILE_EXISTS = ERR_FILE_EXISTS
    NO_SUCH_USER = ERR_NO_SUCH_USER


def _check_block(block: int) -> None:
    if not 0 <= block <= MAX_BLOCK_NUMBER:
        raise ValueError(f"block number out of range: {block}")


def _text(value: str, field: str) -> bytes:
    raw = value.encode("utf-8")
    if b"\x00" in raw:
        raise ValueError(f"{field} must not contain NUL")
    return raw + b"\x00"


@dataclass(frozen=True, slots=True)
class RequestPacket:
    opcode: Opcode
    filename: str
    mode: str = MODE_OCTET

    @property
    def is_read(self) -> bool:
        return self.opcode == Opcode.RRQ

    def to_bytes(self) -> bytes:
        if self.opcode not in (Opcode.RRQ, Opcode.WRQ):
            raise ValueError(f"not a request opcode: {self.opcode}")
        return OPCODE.pack(int(self.opcode)) + _text(self.filename, "filename") + _text(self.mode, "mode")

    @staticmethod
    def read(filename: str, mode: str = MODE_OCTET) -> "RequestPacket":
        return RequestPacket(Opcode.RRQ, filename, mode)

    @staticmethod
    def write(filename: str, mode: str = MODE_OCTET) -> "RequestPacket":
        return RequestPacket(Opcode.WRQ, filename, mode)


@dataclass(frozen=True, slots=True)
class DataPacket:
    block: int
    payload: bytes = b""

    @property
    def is_final(self) -> bool:
        return len(self.payload) < BLOCK_SIZE

    def to_bytes(self) -> bytes:
        _check_block(self.block)
        if len(self.payload) > BLOCK_SIZE:
            raise ValueError(f"payload too large: {len(self.payload)}")
        return HEADER.pack(OPCODE_DATA, self.block) + self.payload


@dataclass(frozen=True, slots=True)
class AckPacket:
    block: int

    def to_bytes(self) -> bytes:
        _check_block(self.block)
        return HEADER.pack(OPCODE_ACK, self.block)


@dataclass(frozen=True, slots=True)
class ErrorPacket:
    code: int
    message: str = ""

    def to_bytes(self) -> bytes:
        if not 0 <= self.code <= 0xFFFF:
            raise ValueError(f"error code out of range: {self.code}")
        return HEADER.pack(OPCODE_ERROR, self.code) + _text(self.message, "message")


Packet = Union[RequestPacket, DataPacket, AckPacket, ErrorPacket]


def encode(packet: Packet) -> bytes:
    return packet.to_bytes()


def _decode_request(opcode: int, body: bytes) -> RequestPacket:
    if not body.endswith(b"\x00"):
        raise MalformedPacket("request field missing NUL terminator")
    fields = body[:-1].split(b"\x00")
    if len(fields) != 2:
        raise MalformedPacket(f"request must carry exactly two fields, got {len(fields)}")
    filename, mode = fields
    if not filename or not mode:
        raise MalformedPacket("request with empty filename or mode")
    try:
        return RequestPacket(Opcode(opcode), filename.decode("utf-8"), mode.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise MalformedPacket("request field is not valid UTF-8", {"error": str(exc)}) from exc


def decode(raw: bytes) -> Packet:
    """Classify a UDP payload by opcode and decode it.

    Raises MalformedPacket for unknown opcodes and any buffer that does not
    fit the layout of the opcode it claims.
    """
    if len(raw) < OPCODE.size:
        raise MalformedPacket("datagram too small to carry an opcode")
    (opcode,) = OPCODE.unpack_from(raw)

    if opcode in (OPCODE_RRQ, OPCODE_WRQ):
        return _decode_request(opcode, raw[OPCODE.size :])

    if opcode == OPCODE_DATA:
        if len(raw) < HEADER_SIZE:
            raise MalformedPacket("data packet too small")
        if len(raw) > MAX_DATAGRAM:
            raise MalformedPacket(f"data packet too large: {len(raw)} bytes")
        _, block = HEADER.unpack_from(raw)
        return DataPacket(block, bytes(raw[HEADER_SIZE:]))

    if opcode == OPCODE_ACK:
        if len(raw) != HEADER_SIZE:
            raise MalformedPacket(f"ack packet must be {HEADER_SIZE} bytes, got {len(raw)}")
        _, block = HEADER.unpack_from(raw)
        return AckPacket(block)

    if opcode == OPCODE_ERROR:
        if len(raw) < HEADER_SIZE:
            raise MalformedPacket("error packet too small")
        _, code = HEADER.unpack_from(raw)
        # the code is still meaningful without the terminator
        message = bytes(raw[HEADER_SIZE:]).split(b"\x00", 1)[0]
        return ErrorPacket(code, message.decode("utf-8", errors="replace"))

    raise MalformedPacket(f"unknown opcode: {opcode}")


def describe(packet: Packet) -> str:
    if isinstance(packet, RequestPacket):
        return f"{packet.opcode.name}({packet.filename!r}, {packet.mode})"
    if isinstance(packet, DataPacket):
        return f"DATA({packet.block}, {len(packet.payload)} bytes)"
    if isinstance(packet, AckPacket):
        return f"ACK({packet.block})"
    return f"ERROR({packet.code}, {packet.message!r})"
