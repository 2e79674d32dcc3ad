"""Byte sources and sinks consumed by transfer sessions."""
from __future__ import annotations

import io
import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional, Union

logger = logging.getLogger(__name__)


class FileSource:
    def __init__(self, f: BinaryIO):
        self.f = f

    @classmethod
    def open(cls, path: Union[str, Path]) -> "FileSource":
        return cls(open(path, "rb"))

    def read(self, size: int) -> bytes:
        return self.f.read(size)

    def close(self) -> None:
        self.f.close()


class FileSink:
    """Writes into a hidden temporary file next to ``path``.

    ``commit`` renames it into place, ``discard`` removes it. Readers of
    ``path`` never see a partial transfer. With ``overwrite=False`` the commit
    is a hard link that fails with FileExistsError if ``path`` appeared in the
    meantime, so of two writers racing for one name only the first succeeds.
    """

    def __init__(self, path: Union[str, Path], *, overwrite: bool = True):
        self.path = Path(path)
        self.overwrite = overwrite
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".part", dir=self.path.parent)
        self._tmp_path: Optional[Path] = Path(tmp)
        self._f: Optional[BinaryIO] = os.fdopen(fd, "wb")
        self.committed = False

    def write(self, chunk: bytes) -> int:
        if self._f is None:
            raise ValueError("write to a closed sink")
        return self._f.write(chunk)

    def commit(self) -> None:
        if self._f is None or self._tmp_path is None:
            return
        self._f.flush()
        os.fsync(self._f.fileno())
        self._f.close()
        self._f = None
        if self.overwrite:
            os.replace(self._tmp_path, self.path)
        else:
            os.link(self._tmp_path, self.path)
            self._tmp_path.unlink()
        self._tmp_path = None
        self.committed = True
        logger.debug("committed %s", self.path)

    def discard(self) -> None:
        if self._f is not None:
            self._f.close()
            self._f = None
        if self._tmp_path is not None:
            self._tmp_path.unlink(missing_ok=True)
            logger.debug("discarded partial output for %s", self.path)
            self._tmp_path = None

    def close(self) -> None:
        """Release the sink; anything not committed is discarded."""
        if not self.committed:
            self.discard()


class BufferSink:
    """In-memory sink, e.g. for fetching a small file straight into memory."""

    def __init__(self) -> None:
        self._buf = io.BytesIO()
        self.committed = False

    def write(self, chunk: bytes) -> int:
        return self._buf.write(chunk)

    def commit(self) -> None:
        self.committed = True

    def discard(self) -> None:
        self._buf = io.BytesIO()
        self.committed = False

    def close(self) -> None:
        pass

    def getvalue(self) -> bytes:
        return self._buf.getvalue()
