"""Exponential reconnect backoff."""

from __future__ import annotations

from pymyozen.config import ReconnectPolicy

# 2**32 * base already exceeds any sane cap.
_MAX_EXPONENT = 32


def compute_backoff_ms(attempts: int, *, base_ms: int, max_ms: int) -> int:
    """Return ``min(base_ms * 2**attempts, max_ms)``."""
    if attempts < 0:
        raise ValueError("attempts must be >= 0")
    return min(base_ms * (2 ** min(attempts, _MAX_EXPONENT)), max_ms)


class Backoff:
    """Attempt counter and current delay for one connection.

    Each supervisor owns its own instance; no backoff state is shared.
    """

    def __init__(self, policy: ReconnectPolicy) -> None:
        self._policy = policy
        self.attempts = 0
        self.current_ms = policy.base_delay_ms

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self._policy.max_attempts

    def reset(self) -> None:
        self.attempts = 0
        self.current_ms = self._policy.base_delay_ms

    def next_delay_ms(self) -> int:
        """Count one more attempt and return the delay to wait before it."""
        self.attempts += 1
        self.current_ms = compute_backoff_ms(
            self.attempts,
            base_ms=self._policy.base_delay_ms,
            max_ms=self._policy.max_delay_ms,
        )
        return self.current_ms
