"""Persisted session and device records, as exchanged with storage."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import ConfigDict, Field

from pymyozen.models._base import MyozenBaseModel
from pymyozen.models.events import Sample, SessionKind, StimulationParameters


class SyncStatus(MyozenBaseModel):
    synced: bool = False
    synced_at: datetime | None = None


class SessionRecord(MyozenBaseModel):
    """One EMG or EMS recording session.

    ``payload`` is ordered by arrival; appends are additive only.
    """

    model_config = ConfigDict(frozen=False, extra="forbid")

    id: str | None = None
    """Assigned by storage on create."""
    kind: SessionKind
    device_ref: str
    patient_ref: str | None = None
    doctor_ref: str | None = None
    session_id: str
    start_time: datetime
    end_time: datetime | None = None
    payload: list[Sample] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    stimulation_parameters: StimulationParameters | None = None
    """EMS only."""
    stimulation_pattern: str | None = None
    """EMS only (``continuous``, ``burst``, ``ramp``, ``custom``)."""
    sync_status: SyncStatus = Field(default_factory=SyncStatus)

    @property
    def sample_count(self) -> int:
        return len(self.payload)

    @property
    def is_synced(self) -> bool:
        return self.sync_status.synced


class DeviceRecord(MyozenBaseModel):
    """The subset of a stored device the ingestion core reads or updates."""

    model_config = ConfigDict(frozen=False, extra="ignore")

    id: str
    """Storage reference (``deviceRef``)."""
    external_id: str
    """Serial number the device reports on the wire."""
    name: str | None = None
    assigned_patient: str | None = None
    assigned_doctor: str | None = None
    battery_level: int | None = None
    firmware_version: str | None = None
    last_connected: datetime | None = None
