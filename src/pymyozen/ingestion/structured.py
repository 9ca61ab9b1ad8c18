"""Structured (JSON) payload decoding for the MQTT transport.

Devices publish documents like::

    {"type": "emg", "sessionId": "s-17", "timestamp": 1767225600000,
     "dataPoints": [{"value": 12.5, "channel": 1}], "metadata": {...}}

    {"type": "ems", "sessionId": "s-18",
     "stimulationParameters": {"frequency": 50, "pulseWidth": 300},
     "stimulationPattern": "burst", "responseData": [...]}

Validation is done with minimal Pydantic envelopes; anything that does not
fit is rejected with :class:`MyozenDecodeError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter, ValidationError, field_validator

from pymyozen.exceptions import MyozenDecodeError
from pymyozen.ingestion.normalize import load_document, normalize_type_field
from pymyozen.models._base import MyozenBaseModel, MyozenTimestamp, utcnow
from pymyozen.models.events import (
    DeviceEvent,
    DeviceStatus,
    FrameSource,
    Sample,
    SessionKind,
    StimulationParameters,
)


class _DataPoint(MyozenBaseModel):
    timestamp: MyozenTimestamp | None = None
    value: float
    channel: int = 0


class _Document(MyozenBaseModel):
    session_id: str
    timestamp: MyozenTimestamp | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    battery_level: int | None = Field(default=None, ge=0, le=100)
    firmware_version: str | None = None

    @field_validator("session_id", mode="before")
    @classmethod
    def _coerce_session_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_metadata(cls, value: Any) -> Any:
        return {} if value is None else value


class _EmgDocument(_Document):
    type: Literal["emg"]
    data_points: list[_DataPoint] = Field(default_factory=list)


class _EmsDocument(_Document):
    type: Literal["ems"]
    stimulation_parameters: StimulationParameters | None = None
    stimulation_pattern: str | None = None
    response_data: list[_DataPoint] = Field(default_factory=list)


class _StatusDocument(MyozenBaseModel):
    battery_level: int | None = Field(default=None, ge=0, le=100)
    firmware_version: str | None = None


_DOCUMENT_ADAPTER: TypeAdapter[_EmgDocument | _EmsDocument] = TypeAdapter(
    Annotated[_EmgDocument | _EmsDocument, Field(discriminator="type")]
)


def _samples(points: list[_DataPoint], default_ts: datetime) -> tuple[Sample, ...]:
    return tuple(
        Sample(timestamp=point.timestamp or default_ts, value=point.value, channel=point.channel) for point in points
    )


def _status(document: _Document) -> DeviceStatus | None:
    status = DeviceStatus(battery_level=document.battery_level, firmware_version=document.firmware_version)
    return None if status.is_empty else status


def decode_structured_frame(
    raw: bytes | bytearray | str | Mapping[str, Any],
    *,
    device_id: str,
    received_at: datetime | None = None,
) -> DeviceEvent:
    """Decode one MQTT data document into a :class:`DeviceEvent`."""
    document = normalize_type_field(load_document(raw))
    try:
        parsed = _DOCUMENT_ADAPTER.validate_python(document)
    except ValidationError as exc:
        reason = "unknown_kind" if document.get("type") not in {"emg", "ems"} else "invalid_document"
        raise MyozenDecodeError(f"invalid device document: {exc.error_count()} error(s)", reason=reason) from exc

    timestamp = parsed.timestamp or received_at or utcnow()
    if isinstance(parsed, _EmgDocument):
        return DeviceEvent(
            device_id=device_id,
            kind=SessionKind.EMG,
            session_id=parsed.session_id,
            timestamp=timestamp,
            samples=_samples(parsed.data_points, timestamp),
            metadata=parsed.metadata,
            status=_status(parsed),
            source=FrameSource.MQTT,
        )
    return DeviceEvent(
        device_id=device_id,
        kind=SessionKind.EMS,
        session_id=parsed.session_id,
        timestamp=timestamp,
        samples=_samples(parsed.response_data, timestamp),
        stimulation_parameters=parsed.stimulation_parameters,
        stimulation_pattern=parsed.stimulation_pattern,
        metadata=parsed.metadata,
        status=_status(parsed),
        source=FrameSource.MQTT,
    )


def decode_structured_status(raw: bytes | bytearray | str | Mapping[str, Any]) -> DeviceStatus:
    document = load_document(raw)
    try:
        parsed = _StatusDocument.model_validate(document)
    except ValidationError as exc:
        raise MyozenDecodeError(
            f"invalid status document: {exc.error_count()} error(s)",
            reason="invalid_status",
        ) from exc
    return DeviceStatus(battery_level=parsed.battery_level, firmware_version=parsed.firmware_version)
