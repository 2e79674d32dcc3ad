from __future__ import annotations

import enum
from pathlib import Path
from typing import Union

from .errors import RequestDenied
from .packet import ErrorCode


class Direction(enum.Enum):
    READ = "read"
    WRITE = "write"


class PathPolicy:
    """Decides which paths a request may touch.

    Every filename is resolved below ``root``; a leading ``/`` is taken as
    relative to the root. Holds no mutable state, so sessions may call it
    concurrently.
    """

    def __init__(self, root: Union[str, Path], *, allow_overwrite: bool = False):
        self.root = Path(root).resolve()
        self.allow_overwrite = allow_overwrite

    def authorize(self, filename: str, direction: Direction) -> Path:
        if not filename or "\x00" in filename:
            raise RequestDenied(ErrorCode.ACCESS_VIOLATION, "Invalid filename")
        relative = filename.replace("\\", "/").lstrip("/")
        if not relative:
            raise RequestDenied(ErrorCode.ACCESS_VIOLATION, "Invalid filename")

        path = (self.root / relative).resolve()
        if path == self.root or not path.is_relative_to(self.root):
            raise RequestDenied(
                ErrorCode.ACCESS_VIOLATION,
                "Access denied",
                {"filename": filename, "resolved": str(path)},
            )

        if direction is Direction.READ:
            if not path.is_file():
                raise RequestDenied(ErrorCode.FILE_NOT_FOUND, "File not found", {"filename": filename})
        else:
            if path.exists() and (path.is_dir() or not self.allow_overwrite):
                raise RequestDenied(ErrorCode.FILE_EXISTS, "File already exists", {"filename": filename})
            if not path.parent.is_dir():
                raise RequestDenied(ErrorCode.FILE_NOT_FOUND, "Directory not found", {"filename": filename})
        return path
