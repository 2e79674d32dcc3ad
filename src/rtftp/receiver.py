from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from .errors import MalformedPacket
from .packet import AckPacket, DataPacket, ErrorCode, ErrorPacket, Packet, decode, describe
from .retry import RetryPolicy
from .session import Endpoint, FailureReason, Role, Send, State, TransferSession, io_error_code

logger = logging.getLogger(__name__)


class ByteSink(Protocol):
    def write(self, chunk: bytes) -> object: ...

    def commit(self) -> None: ...

    def discard(self) -> None: ...


class Receiver(TransferSession):
    """Data-receiving side: the server answering a WRQ, or a client after its RRQ.

    Without a ``request`` (server WRQ) the session opens with Ack(0). By
    default a bound receiver never retransmits its last ACK on timeout; the
    sender is expected to resend the Data. ``reack_on_timeout`` enables it.
    """

    role = Role.RECEIVER
    lingers_after_done = True

    def __init__(
        self,
        peer: Endpoint,
        sink: ByteSink,
        *,
        policy: Optional[RetryPolicy] = None,
        request: Optional[Packet] = None,
        reack_on_timeout: bool = False,
    ):
        super().__init__(peer, policy=policy, request=request)
        self.sink = sink
        self.reack_on_timeout = reack_on_timeout

    def _begin(self) -> None:
        self.block = 1
        self.state = State.AWAITING_DATA
        if self.request is None:
            self._transmit(AckPacket(0))

    def _on_late_datagram(self, data: bytes, addr: Endpoint) -> List[Send]:
        # the final ACK may have been lost; the sender then resends the last block
        if addr != self.peer:
            return []
        try:
            packet = decode(data)
        except MalformedPacket:
            return []
        if isinstance(packet, DataPacket) and packet.block <= self.block:
            self.stats.duplicates += 1
            logger.debug("DATA(%d) after completion; re-acking", packet.block)
            self._outbox.append((AckPacket(packet.block), self.peer))
        return self._flush()

    def _resends_on_timeout(self) -> bool:
        # an unbound client still has its request outstanding
        return self.peer is None or self.reack_on_timeout

    def _abandon(self) -> None:
        try:
            self.sink.discard()
        except OSError as exc:
            logger.error("could not discard partial output; %s", exc)

    def _on_packet(self, packet: Packet) -> None:
        if not isinstance(packet, DataPacket):
            logger.warning("ignoring %s while awaiting DATA(%d)", describe(packet), self.block)
            return

        if packet.block == self.block:
            try:
                self.sink.write(packet.payload)
                if packet.is_final:
                    self.sink.commit()
            except OSError as exc:
                code = io_error_code(exc)
                text = "File already exists" if code == ErrorCode.FILE_EXISTS else "Disk full or write error"
                self._fail(
                    FailureReason.LOCAL_IO_ERROR,
                    f"write failed at block {packet.block}: {exc}",
                    ErrorPacket(code, text),
                )
                return
            self.stats.blocks += 1
            self.stats.bytes_transferred += len(packet.payload)
            self.retries = 0
            self._transmit(AckPacket(packet.block))
            if packet.is_final:
                self._complete()
            else:
                self.block += 1
        elif packet.block < self.block:
            # our ACK was lost; answer again without writing
            self.stats.duplicates += 1
            logger.debug("duplicate DATA(%d); re-acking", packet.block)
            self._outbox.append((AckPacket(packet.block), self.destination))
        else:
            self._fail(
                FailureReason.PROTOCOL_VIOLATION,
                f"DATA({packet.block}) ahead of expected block {self.block}",
                ErrorPacket(ErrorCode.ILLEGAL_OPERATION, "Unexpected block number"),
            )
