from __future__ import annotations

import pytest

from pymyozen.config import ReconnectPolicy
from pymyozen.supervision.policy import Backoff, compute_backoff_ms


@pytest.mark.parametrize(
    ("attempts", "expected"),
    [(0, 1000), (1, 2000), (2, 4000), (3, 8000), (4, 16000), (5, 30000), (9, 30000)],
)
def test_compute_backoff_doubles_then_clamps(attempts: int, expected: int) -> None:
    assert compute_backoff_ms(attempts, base_ms=1000, max_ms=30000) == expected


def test_compute_backoff_huge_attempt_count_stays_at_cap() -> None:
    assert compute_backoff_ms(10_000, base_ms=1000, max_ms=30000) == 30000


def test_compute_backoff_rejects_negative_attempts() -> None:
    with pytest.raises(ValueError):
        compute_backoff_ms(-1, base_ms=1000, max_ms=30000)


def test_backoff_sequence_and_reset() -> None:
    backoff = Backoff(ReconnectPolicy(base_delay_ms=1000, max_delay_ms=30000, max_attempts=3))
    assert backoff.current_ms == 1000

    assert [backoff.next_delay_ms() for _ in range(3)] == [2000, 4000, 8000]
    assert backoff.attempts == 3
    assert backoff.exhausted

    backoff.reset()
    assert backoff.attempts == 0
    assert backoff.current_ms == 1000
    assert not backoff.exhausted
