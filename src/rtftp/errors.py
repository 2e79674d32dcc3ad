"""
Exception hierarchy for rtftp.

Transfer failures are not exceptions: a session that fails reports it in its
``Outcome``. Exceptions are reserved for the seams where a caller must
branch, i.e. undecodable datagrams and rejected requests.
"""
from __future__ import annotations

from typing import Optional


class TftpError(Exception):
    """
    Base exception for all rtftp errors.

    Carries a human-readable message and an optional details mapping for
    structured logging.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class MalformedPacket(TftpError):
    """Datagram cannot be decoded as a TFTP packet."""

    pass


class RequestDenied(TftpError):
    """
    A read/write request was refused before a session was created.

    ``code`` is the TFTP error code to send back to the requester.
    """

    def __init__(self, code: int, message: str, details: Optional[dict] = None):
        super().__init__(message, details)
        self.code = int(code)
