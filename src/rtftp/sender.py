from __future__ import annotations

import logging
from typing import Optional, Protocol

from .constants import BLOCK_SIZE, MAX_BLOCK_NUMBER
from .packet import AckPacket, DataPacket, ErrorCode, ErrorPacket, Packet, describe
from .retry import RetryPolicy
from .session import Endpoint, FailureReason, Role, State, TransferSession, io_error_code

logger = logging.getLogger(__name__)


class ByteSource(Protocol):
    def read(self, size: int) -> bytes: ...


class Sender(TransferSession):
    """Data-sending side: the server answering an RRQ, or a client after its WRQ.

    With a ``request`` (client WRQ) the session waits for Ack(0) before the
    first block. Without one the first Data packet is the handshake.
    """

    role = Role.SENDER

    def __init__(
        self,
        peer: Endpoint,
        source: ByteSource,
        *,
        policy: Optional[RetryPolicy] = None,
        request: Optional[Packet] = None,
    ):
        super().__init__(peer, policy=policy, request=request)
        self.source = source
        self._final = False
        self._chunk_len = 0

    def _begin(self) -> None:
        if self.request is not None:
            self.state = State.AWAITING_ACK
        else:
            self._send_next_block()

    def _read_block(self) -> bytes:
        chunk = b""
        while len(chunk) < BLOCK_SIZE:
            part = self.source.read(BLOCK_SIZE - len(chunk))
            if not part:
                break
            chunk += part
        return chunk

    def _send_next_block(self) -> None:
        block = self.block + 1
        if block > MAX_BLOCK_NUMBER:
            # block numbers do not wrap
            self._fail(
                FailureReason.LOCAL_IO_ERROR,
                "file too large for 16-bit block numbers",
                ErrorPacket(ErrorCode.NOT_DEFINED, "File too large"),
            )
            return
        try:
            chunk = self._read_block()
        except OSError as exc:
            self._fail(
                FailureReason.LOCAL_IO_ERROR,
                f"read failed at block {block}: {exc}",
                ErrorPacket(io_error_code(exc), "Read error"),
            )
            return
        self.block = block
        self.retries = 0
        self._final = len(chunk) < BLOCK_SIZE
        self._chunk_len = len(chunk)
        self.state = State.AWAITING_ACK
        self._transmit(DataPacket(block, chunk))

    def _on_packet(self, packet: Packet) -> None:
        if not isinstance(packet, AckPacket):
            logger.warning("ignoring %s while awaiting ACK(%d)", describe(packet), self.block)
            return

        if packet.block == self.block:
            if self.block > 0:
                self.stats.blocks += 1
                self.stats.bytes_transferred += self._chunk_len
            if self._final:
                self._complete()
            else:
                self._send_next_block()
        elif packet.block < self.block:
            self.stats.duplicates += 1
            logger.debug("duplicate ACK(%d); still awaiting ACK(%d)", packet.block, self.block)
        else:
            self._fail(
                FailureReason.PROTOCOL_VIOLATION,
                f"ACK({packet.block}) ahead of block {self.block}",
                ErrorPacket(ErrorCode.ILLEGAL_OPERATION, "Unexpected block number"),
            )
