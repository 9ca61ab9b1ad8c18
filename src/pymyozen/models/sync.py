"""Cloud sync result models."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from pymyozen.models._base import MyozenBaseModel
from pymyozen.models.events import SessionKind


class SyncSummary(MyozenBaseModel):
    """Outcome counts of a forced sync."""

    total: int = 0
    success: int = 0
    failed: int = 0


class SyncRunResult(MyozenBaseModel):
    """Outcome of one scheduled sync run, per record kind."""

    started_at: datetime
    finished_at: datetime
    per_kind: dict[SessionKind, SyncSummary] = Field(default_factory=dict)

    @property
    def attempted(self) -> int:
        return sum(summary.total for summary in self.per_kind.values())

    @property
    def succeeded(self) -> int:
        return sum(summary.success for summary in self.per_kind.values())

    @property
    def failed(self) -> int:
        return sum(summary.failed for summary in self.per_kind.values())


class SyncState(MyozenBaseModel):
    """Scheduler status for the HTTP layer."""

    scheduled: bool = False
    in_flight: bool = False
    interval_ms: int = 0
    last_result: SyncRunResult | None = None
