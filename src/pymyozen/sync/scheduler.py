"""Periodic push of unsynced session records to the remote store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from pymyozen._constants import DEFAULT_SYNC_BATCH_SIZE
from pymyozen.models._base import utcnow
from pymyozen.models.events import SessionKind
from pymyozen.models.session import SessionRecord
from pymyozen.models.sync import SyncRunResult, SyncState, SyncSummary
from pymyozen.storage.base import SessionStorage
from pymyozen.sync.remote import RemotePusher

_logger = logging.getLogger(__name__)


class SyncScheduler:
    """Single-flight sync runs on a fixed interval, plus forced sync by id.

    A run fetches at most ``batch_size`` unsynced records per kind (EMG, then
    EMS) and pushes them one by one. A failed record is logged and left
    unsynced for the next run; it never aborts the rest of the batch.
    """

    def __init__(
        self,
        storage: SessionStorage,
        pusher: RemotePusher,
        *,
        batch_size: int = DEFAULT_SYNC_BATCH_SIZE,
        push_timeout: float = 10.0,
        interval_ms: int = 300_000,
        kinds: Sequence[SessionKind] = (SessionKind.EMG, SessionKind.EMS),
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._storage = storage
        self._pusher = pusher
        self._batch_size = batch_size
        self._push_timeout = push_timeout
        self._kinds = tuple(kinds)
        self._clock = clock
        self._logger = logger or _logger
        self._in_flight = False
        self._last_result: SyncRunResult | None = None
        self._timer: asyncio.Task[None] | None = None
        self._interval_ms = interval_ms

    @property
    def is_running(self) -> bool:
        """Whether a scheduled run is executing right now."""
        return self._in_flight

    @property
    def is_scheduled(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def last_result(self) -> SyncRunResult | None:
        return self._last_result

    def state(self) -> SyncState:
        return SyncState(
            scheduled=self.is_scheduled,
            in_flight=self._in_flight,
            interval_ms=self._interval_ms,
            last_result=self._last_result,
        )

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def start(self, interval_ms: int | None = None) -> None:
        """Run :meth:`run_once` every *interval_ms*; the first run waits one interval."""
        if interval_ms is None:
            interval_ms = self._interval_ms
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        if self.is_scheduled:
            return
        self._interval_ms = interval_ms
        self._timer = asyncio.get_running_loop().create_task(self._tick(interval_ms / 1000), name="myozen-sync")
        self._logger.info("Sync job scheduled every %d ms", interval_ms)

    async def stop(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is None:
            return
        timer.cancel()
        await asyncio.gather(timer, return_exceptions=True)
        self._logger.info("Sync job stopped")

    async def _tick(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.run_once()
            except Exception:
                self._logger.exception("Scheduled sync run failed")

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def run_once(self) -> SyncRunResult | None:
        """One sync pass; ``None`` when another run is already in flight."""
        if self._in_flight:
            self._logger.info("Sync already in progress, skipping this trigger")
            return None
        self._in_flight = True
        try:
            started_at = self._clock()
            per_kind: dict[SessionKind, SyncSummary] = {}
            for kind in self._kinds:
                per_kind[kind] = await self._sync_kind(kind)
            result = SyncRunResult(started_at=started_at, finished_at=self._clock(), per_kind=per_kind)
            self._last_result = result
            self._logger.info(
                "Sync run finished attempted=%d succeeded=%d failed=%d",
                result.attempted,
                result.succeeded,
                result.failed,
            )
            return result
        finally:
            self._in_flight = False

    async def _sync_kind(self, kind: SessionKind) -> SyncSummary:
        try:
            records = await self._storage.find_unsynced(kind, self._batch_size)
        except Exception:
            self._logger.warning("Fetching unsynced %s records failed", kind, exc_info=True)
            return SyncSummary()
        # A backend that ignores the limit must not widen the batch.
        batch = records[: self._batch_size]
        if batch:
            self._logger.info("Syncing %d %s record(s)", len(batch), kind)
        return await self._push_all(batch)

    async def force_sync(self, record_ids: Sequence[str], kind: SessionKind | str) -> SyncSummary:
        """Push the given records now, regardless of the schedule.

        Raises :class:`ValueError` for an unknown kind. Ids that do not resolve
        to a stored record of that kind are not counted.
        """
        session_kind = SessionKind.parse(kind)
        records = await self._storage.find_sessions(session_kind, list(record_ids))
        if len(records) < len(set(record_ids)):
            self._logger.debug(
                "Forced sync resolved %d of %d %s id(s)",
                len(records),
                len(set(record_ids)),
                session_kind,
            )
        summary = await self._push_all(records)
        self._logger.info(
            "Forced sync of %s total=%d success=%d failed=%d",
            session_kind,
            summary.total,
            summary.success,
            summary.failed,
        )
        return summary

    async def _push_all(self, records: Sequence[SessionRecord]) -> SyncSummary:
        success = 0
        for record in records:
            if await self._push_one(record):
                success += 1
        return SyncSummary(total=len(records), success=success, failed=len(records) - success)

    async def _push_one(self, record: SessionRecord) -> bool:
        if record.id is None:
            self._logger.warning("Skipping %s record without id", record.kind)
            return False
        try:
            await asyncio.wait_for(self._pusher.push(record), self._push_timeout)
            await self._storage.mark_synced(record.id, self._clock())
        except TimeoutError:
            self._logger.warning("Push of %s record=%s timed out", record.kind, record.id)
            return False
        except Exception:
            self._logger.warning("Sync of %s record=%s failed", record.kind, record.id, exc_info=True)
            return False
        return True
