from __future__ import annotations

import pytest

from rtftp.retry import Decision, RetryPolicy


def test_defaults():
    p = RetryPolicy()
    assert p.timeout_s == 5.0
    assert p.max_attempts == 5


def test_ceiling_counts_first_send():
    p = RetryPolicy(max_attempts=5)
    assert [p.decide(r) for r in range(5)] == [Decision.RESEND] * 4 + [Decision.GIVE_UP]


def test_single_attempt_never_resends():
    assert RetryPolicy(max_attempts=1).decide(0) is Decision.GIVE_UP


@pytest.mark.parametrize("kwargs", [{"timeout_s": 0}, {"max_attempts": 0}])
def test_invalid(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)
