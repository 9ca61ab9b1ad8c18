"""Session aggregator: the only place decoded events become storage mutations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Hashable
from contextlib import asynccontextmanager
from datetime import datetime
from enum import StrEnum
from typing import Any

from pymyozen._diagnostics import ThrottledDiagnostics
from pymyozen.exceptions import MyozenStorageError
from pymyozen.models._base import utcnow
from pymyozen.models.events import DeviceEvent, DeviceStatus
from pymyozen.models.session import DeviceRecord, SessionRecord
from pymyozen.storage.base import SessionStorage

_logger = logging.getLogger(__name__)


class SessionOutcome(StrEnum):
    CREATED = "created"
    APPENDED = "appended"
    DROPPED = "dropped"


class KeyedLocks:
    """``asyncio.Lock`` per key, released from the table once unused."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class SessionAggregator:
    """Find-or-create-then-append, serialized per ``(deviceRef, sessionId)``.

    Device status updates (``lastConnected``, battery, firmware) run as
    background tasks; their failure is logged and never affects the append.
    """

    def __init__(
        self,
        storage: SessionStorage,
        *,
        logger: logging.Logger | None = None,
        diagnostics: ThrottledDiagnostics | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._logger = logger or _logger
        self._diagnostics = diagnostics or ThrottledDiagnostics(self._logger)
        self._clock = clock
        self._locks = KeyedLocks()
        self._status_tasks: set[asyncio.Task[None]] = set()

    @property
    def diagnostics(self) -> ThrottledDiagnostics:
        return self._diagnostics

    @property
    def pending_status_updates(self) -> int:
        return len(self._status_tasks)

    async def handle(self, event: DeviceEvent) -> SessionOutcome:
        """Persist one decoded event; storage failures drop the event."""
        try:
            device = await self._storage.find_device_by_external_id(event.device_id)
        except MyozenStorageError:
            self._logger.warning("Device lookup failed device=%s, dropping event", event.device_id, exc_info=True)
            return SessionOutcome.DROPPED
        if device is None:
            self._diagnostics.record("unknown_device", "Dropping event from unknown device=%s", event.device_id)
            return SessionOutcome.DROPPED

        fields: dict[str, Any] = {"last_connected": self._clock()}
        if event.status is not None:
            fields.update(event.status.fields())
        self._schedule_status_update(device.id, fields)

        try:
            async with self._locks.hold((device.id, event.kind, event.session_id)):
                return await self._find_or_create(device, event)
        except MyozenStorageError as exc:
            self._logger.warning(
                "Storage %s failed device=%s session=%s kind=%s, dropping event",
                exc.operation or "operation",
                event.device_id,
                event.session_id,
                event.kind,
                exc_info=True,
            )
            return SessionOutcome.DROPPED

    async def _find_or_create(self, device: DeviceRecord, event: DeviceEvent) -> SessionOutcome:
        existing = await self._storage.find_open_session(device.id, event.session_id, kind=event.kind)
        if existing is not None and existing.id is not None:
            await self._storage.append_to_session(existing.id, event.samples, event.timestamp)
            self._logger.debug(
                "Appended %d samples to %s session=%s record=%s",
                event.sample_count,
                event.kind,
                event.session_id,
                existing.id,
            )
            return SessionOutcome.APPENDED

        record = SessionRecord(
            kind=event.kind,
            device_ref=device.id,
            patient_ref=device.assigned_patient,
            doctor_ref=device.assigned_doctor,
            session_id=event.session_id,
            start_time=event.timestamp,
            payload=list(event.samples),
            metadata=dict(event.metadata),
            stimulation_parameters=event.stimulation_parameters,
            stimulation_pattern=event.stimulation_pattern,
        )
        record_id = await self._storage.create_session(record)
        self._logger.info(
            "Created %s session=%s device=%s record=%s",
            event.kind,
            event.session_id,
            event.device_id,
            record_id,
        )
        return SessionOutcome.CREATED

    async def handle_status(self, device_id: str, status: DeviceStatus) -> bool:
        """Apply a status-channel frame; False when nothing was scheduled."""
        if status.is_empty:
            return False
        try:
            device = await self._storage.find_device_by_external_id(device_id)
        except MyozenStorageError:
            self._logger.warning("Device lookup failed device=%s, dropping status", device_id, exc_info=True)
            return False
        if device is None:
            self._diagnostics.record("unknown_device", "Dropping status from unknown device=%s", device_id)
            return False
        fields: dict[str, Any] = {"last_connected": self._clock(), **status.fields()}
        self._schedule_status_update(device.id, fields)
        return True

    def _schedule_status_update(self, device_ref: str, fields: dict[str, Any]) -> None:
        task = asyncio.get_running_loop().create_task(self._update_device_status(device_ref, fields))
        self._status_tasks.add(task)
        task.add_done_callback(self._status_tasks.discard)

    async def _update_device_status(self, device_ref: str, fields: dict[str, Any]) -> None:
        try:
            await self._storage.update_device_status(device_ref, fields)
        except Exception:
            self._logger.warning("Device status update failed device_ref=%s", device_ref, exc_info=True)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight status updates; cancel those still running after *timeout*."""
        if not self._status_tasks:
            return
        _done, pending = await asyncio.wait(set(self._status_tasks), timeout=timeout)
        if pending:
            self._logger.warning("Cancelling %d device status update(s) still pending", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
