from __future__ import annotations

import errno
import threading
from collections import deque

import pytest

from rtftp.packet import decode, encode
from rtftp.policy import PathPolicy
from rtftp.retry import RetryPolicy
from rtftp.server import Server

CLIENT = ("10.0.0.2", 40000)
SERVER_LISTEN = ("10.0.0.1", 69)
SERVER_TID = ("10.0.0.1", 50000)
STRANGER = ("10.0.0.3", 41000)

FAST = RetryPolicy(timeout_s=0.5, max_attempts=5)


def pump(nodes, initial):
    """Deliver packets between in-process sessions until nothing is left in flight.

    ``nodes`` maps an endpoint to the session listening there; ``initial`` is a
    list of (source endpoint, sends). Returns every (src, packet, dst) moved,
    including packets addressed to endpoints nobody listens on.
    """
    queue = deque((src, packet, dst) for src, sends in initial for packet, dst in sends)
    log = []
    while queue:
        src, packet, dst = queue.popleft()
        log.append((src, packet, dst))
        node = nodes.get(dst)
        if node is None:
            continue
        for out, out_dst in node.handle_datagram(encode(packet), src):
            queue.append((dst, out, out_dst))
    return log


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeChannel:
    """Datagram channel whose waits advance a FakeClock instead of sleeping.

    ``responder(packet, addr)`` returns the (bytes, source endpoint) datagrams
    the far side answers with.
    """

    def __init__(self, clock, responder=None):
        self.clock = clock
        self.responder = responder
        self.sent = []
        self.inbox = deque()

    def sendto(self, data, addr):
        packet = decode(data)
        self.sent.append((packet, addr))
        if self.responder is not None:
            self.inbox.extend(self.responder(packet, addr))

    def recv(self, timeout):
        if self.inbox:
            return self.inbox.popleft()
        self.clock.now += timeout
        return None


class FailingSink:
    def __init__(self, err=errno.ENOSPC):
        self.err = err
        self.discarded = False

    def write(self, chunk):
        raise OSError(self.err, "write failed")

    def commit(self):
        pass

    def discard(self):
        self.discarded = True


class FailingSource:
    def __init__(self, err=errno.EACCES):
        self.err = err

    def read(self, size):
        raise OSError(self.err, "read failed")


@pytest.fixture
def root(tmp_path):
    d = tmp_path / "root"
    d.mkdir()
    return d


@pytest.fixture
def server(root):
    srv = Server.bind("127.0.0.1", 0, PathPolicy(root), retry=FAST)
    t = threading.Thread(target=srv.serve_forever, daemon=True)
    t.start()
    yield srv
    srv.shutdown(timeout=5)
    t.join(timeout=5)
