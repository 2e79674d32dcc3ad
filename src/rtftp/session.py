"""Role-independent skeleton of a TFTP transfer.

A session is a pure state machine: it is fed datagrams and timeouts and
answers with the packets to transmit. The driver in ``rtftp.transfer`` owns
the socket and the clock.
"""
from __future__ import annotations

import enum
import errno
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .errors import MalformedPacket
from .packet import ErrorCode, ErrorPacket, Packet, decode, describe
from .retry import Decision, RetryPolicy

logger = logging.getLogger(__name__)

Endpoint = Tuple[str, int]
Send = Tuple[Packet, Endpoint]


class Role(enum.Enum):
    SENDER = "sender"
    RECEIVER = "receiver"


class State(enum.Enum):
    IDLE = "idle"
    AWAITING_ACK = "awaiting_ack"
    AWAITING_DATA = "awaiting_data"
    DONE = "done"
    FAILED = "failed"


class FailureReason(enum.Enum):
    TIMED_OUT = "timed_out"
    PROTOCOL_VIOLATION = "protocol_violation"
    PEER_ERROR = "peer_error"
    LOCAL_IO_ERROR = "local_io_error"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class TransferStats:
    blocks: int = 0
    bytes_transferred: int = 0
    packets_sent: int = 0
    timeouts: int = 0
    retransmits: int = 0
    duplicates: int = 0
    duration_s: float = 0.0

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_transferred * 8 / 1_000_000) / self.duration_s


@dataclass(frozen=True, slots=True)
class Outcome:
    role: Role
    reason: Optional[FailureReason]
    message: str
    stats: TransferStats

    @property
    def ok(self) -> bool:
        return self.reason is None

    def as_dict(self) -> dict:
        return {
            "role": self.role.value,
            "ok": self.ok,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "blocks": self.stats.blocks,
            "bytes": self.stats.bytes_transferred,
            "seconds": self.stats.duration_s,
            "mbps": self.stats.throughput_mbps,
            "timeouts": self.stats.timeouts,
            "retransmits": self.stats.retransmits,
            "duplicates": self.stats.duplicates,
        }


def io_error_code(exc: OSError) -> ErrorCode:
    if exc.errno == errno.EEXIST:
        return ErrorCode.FILE_EXISTS
    if exc.errno in (errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)):
        return ErrorCode.DISK_FULL
    return ErrorCode.ACCESS_VIOLATION


def _fmt(addr: Endpoint) -> str:
    return f"{addr[0]}:{addr[1]}"


class TransferSession:
    """Stop-and-wait skeleton shared by Sender and Receiver.

    ``peer`` is the endpoint the session talks to first. Server sessions pass
    the requester's endpoint and no ``request``: the peer TID is bound from the
    start. Client sessions pass the request they originate; the peer TID stays
    unbound until the first decodable reply, and until then the request is
    what gets retransmitted on timeout.
    """

    role: Role
    #: Whether the driver keeps answering the peer for one timeout after DONE.
    lingers_after_done = False

    def __init__(
        self,
        peer: Endpoint,
        *,
        policy: Optional[RetryPolicy] = None,
        request: Optional[Packet] = None,
    ):
        self.policy = policy or RetryPolicy()
        self.request = request
        self.request_peer = peer
        self.peer: Optional[Endpoint] = None if request is not None else peer
        self.block = 0
        self.retries = 0
        self.state = State.IDLE
        self.reason: Optional[FailureReason] = None
        self.message = ""
        self.stats = TransferStats()
        self._pending: Optional[Packet] = None
        self._outbox: List[Send] = []

    @property
    def finished(self) -> bool:
        return self.state in (State.DONE, State.FAILED)

    @property
    def timer_key(self) -> Tuple[int, int]:
        """Changes whenever the per-block timer has to restart."""
        return (self.block, self.retries)

    @property
    def destination(self) -> Endpoint:
        return self.peer if self.peer is not None else self.request_peer

    def start(self) -> List[Send]:
        if self.state is not State.IDLE:
            raise RuntimeError(f"session already started ({self.state.value})")
        if self.request is not None:
            logger.info("%s start; sending %s to %s", self.role.value, describe(self.request), _fmt(self.request_peer))
            self._transmit(self.request)
        else:
            logger.info("%s start; peer=%s", self.role.value, _fmt(self.request_peer))
        self._begin()
        return self._flush()

    def handle_datagram(self, data: bytes, addr: Endpoint) -> List[Send]:
        if self.state is State.FAILED:
            return []
        if self.state is State.DONE:
            return self._on_late_datagram(data, addr)
        try:
            packet = decode(data)
        except MalformedPacket as exc:
            logger.debug("discarding malformed datagram from %s; %s", _fmt(addr), exc.message)
            return []

        # Only the host the request went to may answer it.
        if self.peer is None and addr[0] == self.request_peer[0]:
            self.peer = addr
            logger.debug("peer TID bound to %s", _fmt(addr))
        if addr != self.peer:
            logger.warning("foreign datagram from %s; expected %s", _fmt(addr), _fmt(self.destination))
            if not isinstance(packet, ErrorPacket):
                self._outbox.append((ErrorPacket(ErrorCode.UNKNOWN_TID, "Unknown transfer ID"), addr))
            return self._flush()

        if isinstance(packet, ErrorPacket):
            self._fail(FailureReason.PEER_ERROR, f"peer error {packet.code}: {packet.message}")
        else:
            self._on_packet(packet)
        return self._flush()

    def handle_timeout(self) -> List[Send]:
        if self.finished:
            return []
        self.stats.timeouts += 1
        if self.policy.decide(self.retries) is Decision.GIVE_UP:
            self._fail(FailureReason.TIMED_OUT, f"no reply for block {self.block} after {self.retries + 1} attempts")
            return self._flush()
        self.retries += 1
        if self._pending is not None and self._resends_on_timeout():
            logger.debug("timeout; resending %s retry=%d", describe(self._pending), self.retries)
            self.stats.retransmits += 1
            self._outbox.append((self._pending, self.destination))
        return self._flush()

    def cancel(self) -> List[Send]:
        if not self.finished:
            self._fail(FailureReason.CANCELLED, "transfer cancelled")
        return self._flush()

    def abort(self, reason: FailureReason, message: str) -> None:
        """Fail from outside the state machine, e.g. on a socket error."""
        if not self.finished:
            self._fail(reason, message)
        self._outbox.clear()

    def outcome(self) -> Outcome:
        return Outcome(self.role, self.reason, self.message, self.stats)

    # hooks

    def _begin(self) -> None:
        raise NotImplementedError

    def _on_packet(self, packet: Packet) -> None:
        raise NotImplementedError

    def _on_late_datagram(self, data: bytes, addr: Endpoint) -> List[Send]:
        return []

    def _resends_on_timeout(self) -> bool:
        return True

    def _abandon(self) -> None:
        pass

    # helpers

    def _transmit(self, packet: Packet) -> None:
        """Send ``packet`` as the one retransmitted on timeout."""
        self._pending = packet
        self._outbox.append((packet, self.destination))

    def _flush(self) -> List[Send]:
        out, self._outbox = self._outbox, []
        self.stats.packets_sent += len(out)
        return out

    def _complete(self) -> None:
        self.state = State.DONE
        self._pending = None
        logger.info(
            "%s done; blocks=%d bytes=%d retransmits=%d",
            self.role.value,
            self.stats.blocks,
            self.stats.bytes_transferred,
            self.stats.retransmits,
        )

    def _fail(self, reason: FailureReason, message: str, notify: Optional[ErrorPacket] = None) -> None:
        if notify is not None:
            self._outbox.append((notify, self.destination))
        self.state = State.FAILED
        self.reason = reason
        self.message = message
        self._pending = None
        logger.warning("%s failed; reason=%s %s", self.role.value, reason.value, message)
        self._abandon()
