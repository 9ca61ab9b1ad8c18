"""Counted, rate-limited diagnostics for high-frequency drop paths."""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable


class ThrottledDiagnostics:
    """Count every occurrence per reason, log at most once per interval.

    A stream of malformed frames must never flood the log. Each reason keeps
    its own window; when a window reopens the next log line reports how many
    occurrences were suppressed in between.
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        interval: float = 5.0,
        level: int = logging.WARNING,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._logger = logger
        self._interval = interval
        self._level = level
        self._clock = clock
        self._counts: Counter[str] = Counter()
        self._suppressed: Counter[str] = Counter()
        self._last_emit: dict[str, float] = {}

    def record(self, reason: str, message: str, *args: object) -> bool:
        """Count one occurrence of *reason*; return True when it was logged."""
        self._counts[reason] += 1
        now = self._clock()
        last = self._last_emit.get(reason)
        if last is not None and (now - last) < self._interval:
            self._suppressed[reason] += 1
            return False

        suppressed = self._suppressed.pop(reason, 0)
        self._last_emit[reason] = now
        if suppressed:
            self._logger.log(
                self._level,
                message + " (%d similar suppressed, %d total)",
                *args,
                suppressed,
                self._counts[reason],
            )
        else:
            self._logger.log(self._level, message, *args)
        return True

    def count(self, reason: str) -> int:
        return self._counts[reason]

    @property
    def counts(self) -> dict[str, int]:
        """Snapshot of all counted reasons."""
        return dict(self._counts)

    @property
    def total(self) -> int:
        return sum(self._counts.values())
