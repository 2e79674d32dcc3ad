from __future__ import annotations

import socket
import threading
from pathlib import Path
from typing import Optional, Union

from .constants import DEFAULT_PORT
from .net import Impairment, UdpEndpoint
from .packet import RequestPacket
from .receiver import ByteSink
from .retry import RetryPolicy
from .sender import ByteSource
from .session import Outcome
from .streams import FileSink, FileSource
from .transfer import run_receiver, run_sender


class Client:
    """Originates transfers against one server; each call uses a fresh ephemeral port."""

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        *,
        retry: Optional[RetryPolicy] = None,
        impairment: Optional[Impairment] = None,
        cancel: Optional[threading.Event] = None,
    ):
        # replies are matched on the address the request went to
        self.server = (socket.gethostbyname(host), port)
        self.retry = retry or RetryPolicy()
        self.impairment = impairment
        self.cancel = cancel

    def download(self, filename: str, sink: ByteSink) -> Outcome:
        endpoint = UdpEndpoint.ephemeral(impairment=self.impairment)
        try:
            return run_receiver(
                endpoint,
                self.server,
                sink,
                policy=self.retry,
                request=RequestPacket.read(filename),
                cancel=self.cancel,
            )
        finally:
            endpoint.close()

    def upload(self, filename: str, source: ByteSource) -> Outcome:
        endpoint = UdpEndpoint.ephemeral(impairment=self.impairment)
        try:
            return run_sender(
                endpoint,
                self.server,
                source,
                policy=self.retry,
                request=RequestPacket.write(filename),
                cancel=self.cancel,
            )
        finally:
            endpoint.close()

    def get(self, remote: str, local: Union[str, Path]) -> Outcome:
        sink = FileSink(local)
        try:
            return self.download(remote, sink)
        finally:
            sink.close()

    def put(self, local: Union[str, Path], remote: str) -> Outcome:
        source = FileSource.open(local)
        try:
            return self.upload(remote, source)
        finally:
            source.close()
