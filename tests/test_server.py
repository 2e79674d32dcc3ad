from __future__ import annotations

import random
import socket
import threading
import time

import pytest

from conftest import FAST
from rtftp.client import Client
from rtftp.net import Impairment
from rtftp.packet import AckPacket, DataPacket, ErrorCode, ErrorPacket, RequestPacket, decode, encode
from rtftp.retry import RetryPolicy
from rtftp.session import FailureReason
from rtftp.streams import BufferSink


def client_for(server, **kwargs) -> Client:
    host, port = server.address
    return Client(host, port, retry=kwargs.pop("retry", FAST), **kwargs)


def raw_exchange(server, packet, timeout=2.0):
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.settimeout(timeout)
    try:
        sock.sendto(encode(packet), server.address)
        data, addr = sock.recvfrom(1024)
        return decode(data), addr
    finally:
        sock.close()


def test_get(server, root, tmp_path):
    data = bytes(random.Random(1).getrandbits(8) for _ in range(3000))
    (root / "image.bin").write_bytes(data)
    local = tmp_path / "image.copy"

    outcome = client_for(server).get("image.bin", local)

    assert outcome.ok, outcome.message
    assert local.read_bytes() == data
    assert outcome.stats.blocks == 6


def test_put(server, root, tmp_path):
    data = b"p" * 1024
    local = tmp_path / "upload.bin"
    local.write_bytes(data)

    outcome = client_for(server).put(local, "upload.bin")

    assert outcome.ok, outcome.message
    deadline = time.monotonic() + 5
    while server.active_transfers and time.monotonic() < deadline:
        time.sleep(0.01)
    assert (root / "upload.bin").read_bytes() == data


def test_get_missing_file(server, tmp_path):
    local = tmp_path / "missing.bin"
    outcome = client_for(server).get("missing.bin", local)

    assert outcome.reason is FailureReason.PEER_ERROR
    assert "File not found" in outcome.message
    assert not local.exists()
    assert list(tmp_path.iterdir()) == [tmp_path / "root"]


def test_put_existing_file_rejected(server, root):
    (root / "taken.bin").write_bytes(b"keep")
    outcome = client_for(server).upload("taken.bin", _BytesSource(b"new contents"))

    assert outcome.reason is FailureReason.PEER_ERROR
    assert (root / "taken.bin").read_bytes() == b"keep"


def test_error_comes_from_transfer_port(server, root):
    reply, addr = raw_exchange(server, RequestPacket.read("missing"))
    assert reply == ErrorPacket(ErrorCode.FILE_NOT_FOUND, "File not found")
    assert addr[1] != server.address[1]


@pytest.mark.parametrize("packet", [RequestPacket.read("a" * 300), RequestPacket.write("a" * 300)])
def test_overlong_filename_gets_error(server, root, packet):
    reply, addr = raw_exchange(server, packet)
    assert isinstance(reply, ErrorPacket)
    assert addr[1] != server.address[1]

    # the server is still answering
    reply, _ = raw_exchange(server, RequestPacket.read("missing"))
    assert reply.code == ErrorCode.FILE_NOT_FOUND


def test_netascii_rejected(server, root):
    (root / "a.txt").write_bytes(b"text")
    reply, _ = raw_exchange(server, RequestPacket.read("a.txt", "netascii"))
    assert isinstance(reply, ErrorPacket)
    assert reply.code == ErrorCode.ILLEGAL_OPERATION


def test_non_request_on_listening_port(server):
    reply, addr = raw_exchange(server, AckPacket(1))
    assert reply.code == ErrorCode.ILLEGAL_OPERATION
    assert addr == server.address


def test_concurrent_downloads(server, root, tmp_path):
    files = {f"f{i}.bin": bytes([i]) * (700 * (i + 1)) for i in range(4)}
    for name, data in files.items():
        (root / name).write_bytes(data)

    results = {}

    def fetch(name):
        sink = BufferSink()
        outcome = client_for(server).download(name, sink)
        results[name] = (outcome.ok, sink.getvalue())

    threads = [threading.Thread(target=fetch, args=(name,)) for name in files]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert results == {name: (True, data) for name, data in files.items()}


def test_lossy_download(server, root):
    data = bytes(range(256)) * 16
    (root / "lossy.bin").write_bytes(data)
    impairment = Impairment(loss_rate=0.05, rng=random.Random(7))
    sink = BufferSink()

    outcome = client_for(server, retry=RetryPolicy(timeout_s=0.5, max_attempts=10), impairment=impairment).download(
        "lossy.bin", sink
    )

    assert outcome.ok, outcome.message
    assert sink.getvalue() == data


def test_shutdown_cancels_live_upload(server, root):
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.settimeout(2)
    try:
        sock.sendto(encode(RequestPacket.write("stalled.bin")), server.address)
        data, tid = sock.recvfrom(1024)
        assert decode(data) == AckPacket(0)
        sock.sendto(encode(DataPacket(1, b"s" * 512)), tid)
        data, _ = sock.recvfrom(1024)
        assert decode(data) == AckPacket(1)
        assert server.active_transfers == 1

        server.shutdown(timeout=5)

        assert server.active_transfers == 0
        assert list(root.iterdir()) == []
    finally:
        sock.close()


class _BytesSource:
    def __init__(self, data: bytes):
        self.data = data

    def read(self, size: int) -> bytes:
        chunk, self.data = self.data[:size], self.data[size:]
        return chunk
