"""Normalized device events.

Both transports decode their frames into :class:`DeviceEvent`. Only the
session aggregator turns events into storage mutations.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator

from pymyozen.models._base import MyozenBaseModel, MyozenTimestamp


class SessionKind(StrEnum):
    EMG = "emg"
    EMS = "ems"

    @classmethod
    def parse(cls, value: str | SessionKind) -> SessionKind:
        """Case-insensitive lookup (``"EMG"``, ``"emg"``)."""
        if isinstance(value, SessionKind):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown session kind: {value!r}") from None


class FrameSource(StrEnum):
    MQTT = "mqtt"
    WIRELESS = "wireless"


class Sample(MyozenBaseModel):
    """One point of an EMG series or an EMS response series."""

    timestamp: MyozenTimestamp
    value: float | None = None
    channel: int = 0
    blob: bytes | None = None
    """Opaque response bytes (wireless EMS frames)."""


class StimulationParameters(MyozenBaseModel):
    """EMS stimulation settings; every field is optional on the wire."""

    intensity: float | None = None
    frequency: float | None = None
    pulse_width: float | None = None
    amplitude: float | None = None
    waveform: str | None = None
    duration: float | None = None
    rest_period: float | None = None


class DeviceStatus(MyozenBaseModel):
    """Battery/firmware fields a device may report alongside data."""

    battery_level: int | None = Field(default=None, ge=0, le=100)
    firmware_version: str | None = None

    def fields(self) -> dict[str, Any]:
        """Non-empty status fields as a storage patch."""
        return self.model_dump(exclude_none=True)

    @property
    def is_empty(self) -> bool:
        return self.battery_level is None and not self.firmware_version


class DeviceEvent(MyozenBaseModel):
    """A decoded frame. Immutable; produced once per frame."""

    device_id: str
    kind: SessionKind
    session_id: str
    timestamp: MyozenTimestamp
    samples: tuple[Sample, ...] = ()
    """EMG samples, or the EMS response samples."""
    stimulation_parameters: StimulationParameters | None = None
    stimulation_pattern: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: DeviceStatus | None = None
    source: FrameSource = FrameSource.MQTT

    @field_validator("device_id", "session_id", mode="before")
    @classmethod
    def _non_empty(cls, value: Any) -> str:
        # Wireless frames carry numeric session ids.
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str) or not value.strip():
            raise ValueError("identifier must be a non-empty string")
        return value.strip()

    @property
    def key(self) -> tuple[str, str]:
        """Serialization key before device resolution."""
        return (self.device_id, self.session_id)

    @property
    def sample_count(self) -> int:
        return len(self.samples)
