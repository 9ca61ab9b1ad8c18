"""Deterministic in-memory implementation of :class:`SessionStorage`.

Used by tests, the gateway script and as the reference for backend
implementers. Every read returns a deep copy so callers can never mutate
stored state outside the storage operations.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import Any

from pymyozen.exceptions import MyozenStorageError
from pymyozen.models.events import Sample, SessionKind
from pymyozen.models.session import DeviceRecord, SessionRecord, SyncStatus

_DEVICE_STATUS_FIELDS = frozenset({"battery_level", "firmware_version", "last_connected"})

_SessionKey = tuple[SessionKind, str, str]


def _new_id() -> str:
    return uuid.uuid4().hex


class InMemoryStorage:
    """In-memory session and device store.

    ``(kind, device_ref, session_id)`` is a unique index, so a second
    ``create_session`` for a session that already exists raises instead of
    silently duplicating it.
    """

    def __init__(self, *, id_factory: Callable[[], str] = _new_id) -> None:
        self._id_factory = id_factory
        self._sessions: dict[str, SessionRecord] = {}
        self._open_index: dict[_SessionKey, str] = {}
        self._devices: dict[str, DeviceRecord] = {}
        self._devices_by_external_id: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def register_device(self, device: DeviceRecord) -> None:
        self._devices[device.id] = device.model_copy(deep=True)
        self._devices_by_external_id[device.external_id] = device.id

    def get_device(self, device_ref: str) -> DeviceRecord | None:
        device = self._devices.get(device_ref)
        return device.model_copy(deep=True) if device is not None else None

    async def find_device_by_external_id(self, external_id: str) -> DeviceRecord | None:
        device_ref = self._devices_by_external_id.get(external_id)
        if device_ref is None:
            return None
        return self.get_device(device_ref)

    async def update_device_status(self, device_ref: str, fields: Mapping[str, Any]) -> None:
        device = self._devices.get(device_ref)
        if device is None:
            raise MyozenStorageError(f"unknown device {device_ref}", operation="update_device_status")
        for name, value in fields.items():
            if name in _DEVICE_STATUS_FIELDS:
                setattr(device, name, value)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_session(self, record_id: str) -> SessionRecord | None:
        record = self._sessions.get(record_id)
        return record.model_copy(deep=True) if record is not None else None

    def sessions(self, kind: SessionKind | None = None) -> list[SessionRecord]:
        return [
            record.model_copy(deep=True)
            for record in self._sessions.values()
            if kind is None or record.kind == kind
        ]

    async def find_open_session(
        self,
        device_ref: str,
        session_id: str,
        *,
        kind: SessionKind,
    ) -> SessionRecord | None:
        record_id = self._open_index.get((kind, device_ref, session_id))
        if record_id is None:
            return None
        return self.get_session(record_id)

    async def create_session(self, record: SessionRecord) -> str:
        key = (record.kind, record.device_ref, record.session_id)
        if key in self._open_index:
            raise MyozenStorageError(
                f"session {record.session_id} already open for device {record.device_ref}",
                operation="create_session",
            )
        record_id = record.id or self._id_factory()
        stored = record.model_copy(deep=True)
        stored.id = record_id
        self._sessions[record_id] = stored
        self._open_index[key] = record_id
        return record_id

    async def append_to_session(
        self,
        record_id: str,
        samples: Sequence[Sample],
        end_time: datetime,
    ) -> None:
        record = self._sessions.get(record_id)
        if record is None:
            raise MyozenStorageError(f"unknown session record {record_id}", operation="append_to_session")
        record.payload.extend(samples)
        # endTime never moves backwards.
        if record.end_time is None or end_time > record.end_time:
            record.end_time = end_time

    async def find_unsynced(self, kind: SessionKind, limit: int) -> list[SessionRecord]:
        if limit <= 0:
            return []
        pending = [r for r in self._sessions.values() if r.kind == kind and not r.sync_status.synced]
        pending.sort(key=lambda r: r.start_time)
        return [r.model_copy(deep=True) for r in pending[:limit]]

    async def find_sessions(self, kind: SessionKind, record_ids: Sequence[str]) -> list[SessionRecord]:
        found: list[SessionRecord] = []
        for record_id in dict.fromkeys(record_ids):
            record = self._sessions.get(record_id)
            if record is not None and record.kind == kind:
                found.append(record.model_copy(deep=True))
        return found

    async def mark_synced(self, record_id: str, synced_at: datetime) -> bool:
        record = self._sessions.get(record_id)
        if record is None:
            raise MyozenStorageError(f"unknown session record {record_id}", operation="mark_synced")
        if record.sync_status.synced:
            return False
        record.sync_status = SyncStatus(synced=True, synced_at=synced_at)
        return True
