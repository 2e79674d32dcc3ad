from __future__ import annotations

import enum
from dataclasses import dataclass

from .constants import DEFAULT_MAX_ATTEMPTS, DEFAULT_TIMEOUT_S


class Decision(enum.Enum):
    RESEND = "resend"
    GIVE_UP = "give_up"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Fixed-interval retry ceiling shared by both transfer roles.

    ``max_attempts`` counts the original send, so the default of 5 allows
    four retransmissions of a block. There is no backoff.
    """

    timeout_s: float = DEFAULT_TIMEOUT_S
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if self.timeout_s <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout_s}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def decide(self, retries: int) -> Decision:
        """``retries`` is the number of retransmissions already made for the block."""
        if retries + 1 < self.max_attempts:
            return Decision.RESEND
        return Decision.GIVE_UP
