"""Trivial File Transfer Protocol (RFC 1350) over UDP.

Layout:
- packet framing is separate from the transfer state machines
- one session class per data direction, shared by client and server
- sessions are pure; sockets and clocks are injected by the driver
"""

from .packet import AckPacket, DataPacket, ErrorCode, ErrorPacket, Opcode, RequestPacket, decode, encode
from .retry import RetryPolicy
from .session import FailureReason, Outcome
from .transfer import run_receiver, run_sender

__all__ = [
    "AckPacket",
    "DataPacket",
    "ErrorCode",
    "ErrorPacket",
    "FailureReason",
    "Opcode",
    "Outcome",
    "RequestPacket",
    "RetryPolicy",
    "decode",
    "encode",
    "run_receiver",
    "run_sender",
]
