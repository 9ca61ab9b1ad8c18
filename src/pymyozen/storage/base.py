"""Storage interface consumed by the ingestion core.

The outer application owns persistence (users, patients, devices, session
collections). The core only needs the operations below; any backend that
satisfies this protocol can be injected.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Protocol

from pymyozen.models.events import Sample, SessionKind
from pymyozen.models.session import DeviceRecord, SessionRecord


class SessionStorage(Protocol):
    """Structural storage interface.

    Implementations raise :class:`pymyozen.exceptions.MyozenStorageError`
    on failure. ``append_to_session`` must be atomic with respect to other
    callers: concurrent appends never lose samples.
    """

    async def find_device_by_external_id(self, external_id: str) -> DeviceRecord | None: ...

    async def find_open_session(
        self,
        device_ref: str,
        session_id: str,
        *,
        kind: SessionKind,
    ) -> SessionRecord | None: ...

    async def create_session(self, record: SessionRecord) -> str: ...

    async def append_to_session(
        self,
        record_id: str,
        samples: Sequence[Sample],
        end_time: datetime,
    ) -> None: ...

    async def find_unsynced(self, kind: SessionKind, limit: int) -> list[SessionRecord]: ...

    async def find_sessions(self, kind: SessionKind, record_ids: Sequence[str]) -> list[SessionRecord]: ...

    async def mark_synced(self, record_id: str, synced_at: datetime) -> bool:
        """Flag a record synced; return False when it already was."""
        ...

    async def update_device_status(self, device_ref: str, fields: Mapping[str, Any]) -> None: ...
