"""Drive a transfer session over a datagram channel until it terminates."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, Optional, Protocol, Tuple

from .packet import Packet, describe, encode
from .receiver import ByteSink, Receiver
from .retry import RetryPolicy
from .sender import ByteSource, Sender
from .session import Endpoint, FailureReason, Outcome, Send, State, TransferSession

logger = logging.getLogger(__name__)

# upper bound on one wait so cancellation is observed promptly
POLL_INTERVAL_S = 0.25


class Channel(Protocol):
    def sendto(self, data: bytes, addr: Endpoint) -> None: ...

    def recv(self, timeout: float) -> Optional[Tuple[bytes, Endpoint]]: ...


def _deliver(channel: Channel, sends: Iterable[Send]) -> None:
    for packet, addr in sends:
        logger.debug("send %s to %s:%d", describe(packet), addr[0], addr[1])
        channel.sendto(encode(packet), addr)


def run_session(
    session: TransferSession,
    channel: Channel,
    *,
    clock: Callable[[], float] = time.monotonic,
    cancel: Optional[threading.Event] = None,
) -> Outcome:
    timeout_s = session.policy.timeout_s
    started = clock()
    try:
        _deliver(channel, session.start())
        key = session.timer_key
        deadline = clock() + timeout_s

        while not session.finished:
            if cancel is not None and cancel.is_set():
                _deliver(channel, session.cancel())
                break

            remaining = deadline - clock()
            if remaining <= 0:
                _deliver(channel, session.handle_timeout())
            else:
                wait = min(remaining, POLL_INTERVAL_S) if cancel is not None else remaining
                received = channel.recv(wait)
                if received is None:
                    continue
                _deliver(channel, session.handle_datagram(*received))

            if session.timer_key != key:
                key = session.timer_key
                deadline = clock() + timeout_s

        session.stats.duration_s = max(0.0, clock() - started)
        if session.state is State.DONE and session.lingers_after_done:
            _linger(session, channel, clock, cancel, timeout_s)
    except OSError as exc:
        if session.state is State.DONE:
            logger.warning("socket error after completion; %s", exc)
        else:
            session.abort(FailureReason.LOCAL_IO_ERROR, f"socket error: {exc}")
        if not session.stats.duration_s:
            session.stats.duration_s = max(0.0, clock() - started)
    return session.outcome()


def _linger(
    session: TransferSession,
    channel: Channel,
    clock: Callable[[], float],
    cancel: Optional[threading.Event],
    timeout_s: float,
) -> None:
    """Answer retransmissions of the final block for one more timeout period."""
    deadline = clock() + timeout_s
    while cancel is None or not cancel.is_set():
        remaining = deadline - clock()
        if remaining <= 0:
            return
        wait = min(remaining, POLL_INTERVAL_S) if cancel is not None else remaining
        received = channel.recv(wait)
        if received is not None:
            _deliver(channel, session.handle_datagram(*received))


def run_sender(
    endpoint: Channel,
    peer: Endpoint,
    source: ByteSource,
    *,
    policy: Optional[RetryPolicy] = None,
    request: Optional[Packet] = None,
    clock: Callable[[], float] = time.monotonic,
    cancel: Optional[threading.Event] = None,
) -> Outcome:
    """Send ``source`` to ``peer``.

    Pass the WRQ as ``request`` when acting as a client; the peer TID is then
    learned from the server's first reply.
    """
    session = Sender(peer, source, policy=policy, request=request)
    return run_session(session, endpoint, clock=clock, cancel=cancel)


def run_receiver(
    endpoint: Channel,
    peer: Endpoint,
    sink: ByteSink,
    *,
    policy: Optional[RetryPolicy] = None,
    request: Optional[Packet] = None,
    reack_on_timeout: bool = False,
    clock: Callable[[], float] = time.monotonic,
    cancel: Optional[threading.Event] = None,
) -> Outcome:
    """Receive from ``peer`` into ``sink``; pass the RRQ as ``request`` when acting as a client."""
    session = Receiver(peer, sink, policy=policy, request=request, reack_on_timeout=reack_on_timeout)
    return run_session(session, endpoint, clock=clock, cancel=cancel)
