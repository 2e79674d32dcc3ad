from __future__ import annotations

import random
import socket
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .constants import MAX_DATAGRAM


@dataclass(frozen=True, slots=True)
class Impairment:
    """Simulated loss/delay applied to both directions of an endpoint."""

    loss_rate: float = 0.0
    delay_ms: int = 0
    rng: random.Random = field(default_factory=random.Random, compare=False)

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and self.rng.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class UdpEndpoint:
    """A bound IPv4 UDP socket. One per listening port, one per transfer."""

    def __init__(self, sock: socket.socket, impairment: Impairment | None = None):
        self.sock = sock
        self.impairment = impairment or Impairment()

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        return cls(sock, impairment)

    @classmethod
    def ephemeral(
        cls,
        host: str = "0.0.0.0",
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind((host, 0))
        return cls(sock, impairment)

    @property
    def address(self) -> Tuple[str, int]:
        host, port = self.sock.getsockname()[:2]
        return host, port

    def sendto(self, data: bytes, addr: Tuple[str, int]) -> None:
        if self.impairment.should_drop():
            return
        self.impairment.sleep_if_needed()
        self.sock.sendto(data, addr)

    def recv(self, timeout: float) -> Optional[Tuple[bytes, Tuple[str, int]]]:
        """Wait up to ``timeout`` seconds for one datagram; None when nothing arrived."""
        self.sock.settimeout(max(timeout, 0.001))
        try:
            # one spare byte so oversized datagrams are seen as such
            data, addr = self.sock.recvfrom(MAX_DATAGRAM + 1)
        except (TimeoutError, socket.timeout):
            return None
        except ConnectionResetError:
            # ICMP port unreachable reported on the next read (Windows)
            return None
        if self.impairment.should_drop():
            return None
        self.impairment.sleep_if_needed()
        return data, (addr[0], addr[1])

    def close(self) -> None:
        self.sock.close()
