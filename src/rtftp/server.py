from __future__ import annotations

import logging
import threading
from typing import Optional, Set, Tuple, Union

from .constants import MODE_OCTET
from .errors import MalformedPacket, RequestDenied
from .net import Impairment, UdpEndpoint
from .packet import ErrorCode, ErrorPacket, RequestPacket, decode, describe, encode
from .policy import Direction, PathPolicy
from .retry import RetryPolicy
from .session import Endpoint, Outcome
from .streams import FileSink, FileSource
from .transfer import POLL_INTERVAL_S, run_receiver, run_sender

logger = logging.getLogger(__name__)

Stream = Union[FileSource, FileSink]


def open_transfer(request: RequestPacket, policy: PathPolicy) -> Stream:
    """Validate a request and open the byte source (RRQ) or sink (WRQ) it asks for.

    Raises RequestDenied carrying the error code to answer with.
    """
    if request.mode.lower() != MODE_OCTET:
        raise RequestDenied(ErrorCode.ILLEGAL_OPERATION, "Unsupported mode (use octet)", {"mode": request.mode})

    direction = Direction.READ if request.is_read else Direction.WRITE
    try:
        path = policy.authorize(request.filename, direction)
    except OSError as exc:
        # e.g. ENAMETOOLONG from stat on an overlong name
        raise RequestDenied(ErrorCode.ACCESS_VIOLATION, "Invalid filename", {"error": str(exc)}) from exc
    try:
        if request.is_read:
            return FileSource.open(path)
        return FileSink(path, overwrite=policy.allow_overwrite)
    except FileNotFoundError as exc:
        raise RequestDenied(ErrorCode.FILE_NOT_FOUND, "File not found", {"error": str(exc)}) from exc
    except PermissionError as exc:
        raise RequestDenied(ErrorCode.ACCESS_VIOLATION, "Access violation", {"error": str(exc)}) from exc
    except OSError as exc:
        raise RequestDenied(ErrorCode.NOT_DEFINED, "Cannot open file", {"error": str(exc)}) from exc


class Server:
    """Listens for requests and runs each accepted transfer on its own thread and port."""

    def __init__(
        self,
        endpoint: UdpEndpoint,
        policy: PathPolicy,
        *,
        retry: Optional[RetryPolicy] = None,
        impairment: Optional[Impairment] = None,
    ):
        self.endpoint = endpoint
        self.policy = policy
        self.retry = retry or RetryPolicy()
        self.impairment = impairment
        self.transfer_host = endpoint.address[0]
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._threads: Set[threading.Thread] = set()

    @classmethod
    def bind(
        cls,
        host: str,
        port: int,
        policy: PathPolicy,
        *,
        retry: Optional[RetryPolicy] = None,
        impairment: Optional[Impairment] = None,
    ) -> "Server":
        return cls(UdpEndpoint.listening(host, port, impairment), policy, retry=retry, impairment=impairment)

    @property
    def address(self) -> Tuple[str, int]:
        return self.endpoint.address

    def serve_forever(self) -> None:
        host, port = self.address
        logger.info("server listening on %s:%d; root=%s", host, port, self.policy.root)
        try:
            while not self._stop.is_set():
                received = self.endpoint.recv(POLL_INTERVAL_S)
                if received is None:
                    continue
                try:
                    self.handle_request(*received)
                except OSError as exc:
                    logger.error("could not start transfer for %s:%d; %s", received[1][0], received[1][1], exc)
        finally:
            self.endpoint.close()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop accepting requests and cancel every live transfer."""
        self._stop.set()
        with self._lock:
            threads = list(self._threads)
        for t in threads:
            t.join(timeout)

    @property
    def active_transfers(self) -> int:
        with self._lock:
            return len(self._threads)

    def handle_request(self, data: bytes, addr: Endpoint) -> Optional[threading.Thread]:
        try:
            packet = decode(data)
        except MalformedPacket as exc:
            logger.warning("malformed request from %s:%d; %s", addr[0], addr[1], exc.message)
            self._reply(ErrorPacket(ErrorCode.ILLEGAL_OPERATION, "Malformed request packet"), addr)
            return None

        if isinstance(packet, ErrorPacket):
            logger.debug("ignoring %s on listening port", describe(packet))
            return None
        if not isinstance(packet, RequestPacket):
            logger.warning("unexpected %s from %s:%d on listening port", describe(packet), addr[0], addr[1])
            self._reply(ErrorPacket(ErrorCode.ILLEGAL_OPERATION, "Expected RRQ or WRQ"), addr)
            return None

        logger.info("request from %s:%d; %s", addr[0], addr[1], describe(packet))
        try:
            stream = open_transfer(packet, self.policy)
        except RequestDenied as exc:
            logger.warning("request denied; code=%d %s %s", exc.code, exc.message, exc.details)
            transfer_ep = UdpEndpoint.ephemeral(self.transfer_host, self.impairment)
            try:
                transfer_ep.sendto(encode(ErrorPacket(exc.code, exc.message)), addr)
            finally:
                transfer_ep.close()
            return None

        try:
            transfer_ep = UdpEndpoint.ephemeral(self.transfer_host, self.impairment)
        except OSError:
            stream.close()
            raise

        t = threading.Thread(
            target=self._run_transfer,
            args=(packet, transfer_ep, addr, stream),
            name=f"rtftp-{addr[0]}:{addr[1]}",
            daemon=True,
        )
        with self._lock:
            self._threads.add(t)
        t.start()
        return t

    def _run_transfer(self, request: RequestPacket, endpoint: UdpEndpoint, peer: Endpoint, stream: Stream) -> None:
        outcome: Optional[Outcome] = None
        try:
            if isinstance(stream, FileSource):
                outcome = run_sender(endpoint, peer, stream, policy=self.retry, cancel=self._stop)
            else:
                outcome = run_receiver(endpoint, peer, stream, policy=self.retry, cancel=self._stop)
        finally:
            stream.close()
            endpoint.close()
            with self._lock:
                self._threads.discard(threading.current_thread())

        if outcome.ok:
            logger.info(
                "%s for %s completed; bytes=%d seconds=%.3f",
                request.opcode.name,
                request.filename,
                outcome.stats.bytes_transferred,
                outcome.stats.duration_s,
            )
        else:
            logger.warning("%s for %s failed; reason=%s %s", request.opcode.name, request.filename, outcome.reason.value, outcome.message)

    def _reply(self, packet: ErrorPacket, addr: Endpoint) -> None:
        try:
            self.endpoint.sendto(encode(packet), addr)
        except OSError as exc:
            logger.warning("could not send %s to %s:%d; %s", describe(packet), addr[0], addr[1], exc)
