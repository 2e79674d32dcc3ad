from __future__ import annotations

OPCODE_RRQ = 1
OPCODE_WRQ = 2
OPCODE_DATA = 3
OPCODE_ACK = 4
OPCODE_ERROR = 5

ERR_NOT_DEFINED = 0
ERR_FILE_NOT_FOUND = 1
ERR_ACCESS_VIOLATION = 2
ERR_DISK_FULL = 3
ERR_ILLEGAL_OPERATION = 4
ERR_UNKNOWN_TID = 5
ERR_FILE_EXISTS = 6
ERR_NO_SUCH_USER = 7

MODE_OCTET = "octet"

BLOCK_SIZE = 512
HEADER_SIZE = 4  # opcode + block / error code
MAX_DATAGRAM = HEADER_SIZE + BLOCK_SIZE
MAX_BLOCK_NUMBER = 0xFFFF

DEFAULT_PORT = 69
DEFAULT_TIMEOUT_S = 5.0
DEFAULT_MAX_ATTEMPTS = 5
