"""Binary frame codec for the short-range wireless transport.

Frame layout (little-endian)::

    offset  size  field
    0       1     kind (1 = EMG, 2 = EMS)
    1       4     session id (uint32)
    5       8     timestamp, epoch milliseconds (uint64)
    13      ...   EMG: int16 samples
                  EMS: intensity, frequency, pulse width (1 byte each),
                       then an opaque response blob

Status frames are five bytes: battery level followed by the four firmware
version components.

The decode functions raise :class:`MyozenDecodeError`; the lenient
``decode``/``decode_status`` entry points in :mod:`pymyozen.ingestion.decode`
turn those into ``None``.
"""

from __future__ import annotations

import struct
from collections.abc import Sequence
from datetime import UTC, datetime
from enum import IntEnum

from pymyozen._constants import (
    EMG_SAMPLE_SIZE,
    EMS_PARAMETER_SIZE,
    FRAME_HEADER_FORMAT,
    FRAME_HEADER_SIZE,
    STATUS_FRAME_SIZE,
    WIRELESS_DEVICE_TYPE,
)
from pymyozen.exceptions import MyozenDecodeError
from pymyozen.models.events import (
    DeviceEvent,
    DeviceStatus,
    FrameSource,
    Sample,
    SessionKind,
    StimulationParameters,
)


class FrameKind(IntEnum):
    EMG = 1
    EMS = 2


_KIND_TO_SESSION = {FrameKind.EMG: SessionKind.EMG, FrameKind.EMS: SessionKind.EMS}


def _frame_timestamp(epoch_ms: int) -> datetime:
    try:
        return datetime.fromtimestamp(epoch_ms / 1000.0, tz=UTC)
    except (OverflowError, OSError, ValueError) as exc:
        raise MyozenDecodeError(f"timestamp out of range: {epoch_ms}", reason="bad_timestamp") from exc


def _metadata() -> dict[str, str]:
    return {"source": "bluetooth", "deviceType": WIRELESS_DEVICE_TYPE}


def decode_wireless_frame(raw: bytes | bytearray | memoryview, *, device_id: str) -> DeviceEvent:
    """Decode one wireless data frame into a :class:`DeviceEvent`."""
    data = bytes(raw)
    if len(data) < FRAME_HEADER_SIZE:
        raise MyozenDecodeError(
            f"frame is {len(data)} bytes, header needs {FRAME_HEADER_SIZE}",
            reason="truncated",
        )

    kind_byte, session_number, epoch_ms = struct.unpack_from(FRAME_HEADER_FORMAT, data, 0)
    try:
        kind = FrameKind(kind_byte)
    except ValueError:
        raise MyozenDecodeError(f"unknown frame kind {kind_byte}", reason="unknown_kind") from None

    timestamp = _frame_timestamp(epoch_ms)
    tail = data[FRAME_HEADER_SIZE:]

    if kind == FrameKind.EMG:
        # A dangling odd byte is not a sample.
        count = len(tail) // EMG_SAMPLE_SIZE
        values = struct.unpack_from(f"<{count}h", tail, 0) if count else ()
        samples = tuple(Sample(timestamp=timestamp, value=float(v)) for v in values)
        return DeviceEvent(
            device_id=device_id,
            kind=SessionKind.EMG,
            session_id=str(session_number),
            timestamp=timestamp,
            samples=samples,
            metadata=_metadata(),
            source=FrameSource.WIRELESS,
        )

    if len(tail) < EMS_PARAMETER_SIZE:
        raise MyozenDecodeError(
            f"EMS frame tail is {len(tail)} bytes, parameters need {EMS_PARAMETER_SIZE}",
            reason="truncated",
        )
    intensity, frequency, pulse_width = tail[0], tail[1], tail[2]
    return DeviceEvent(
        device_id=device_id,
        kind=_KIND_TO_SESSION[kind],
        session_id=str(session_number),
        timestamp=timestamp,
        samples=(Sample(timestamp=timestamp, blob=tail[EMS_PARAMETER_SIZE:]),),
        stimulation_parameters=StimulationParameters(
            intensity=intensity,
            frequency=frequency,
            pulse_width=pulse_width,
        ),
        metadata=_metadata(),
        source=FrameSource.WIRELESS,
    )


def decode_status_frame(raw: bytes | bytearray | memoryview) -> DeviceStatus:
    data = bytes(raw)
    if len(data) < STATUS_FRAME_SIZE:
        raise MyozenDecodeError(
            f"status frame is {len(data)} bytes, needs {STATUS_FRAME_SIZE}",
            reason="truncated",
        )
    battery = data[0]
    if battery > 100:
        raise MyozenDecodeError(f"battery level {battery} out of range", reason="out_of_range")
    major, minor, patch, build = data[1], data[2], data[3], data[4]
    return DeviceStatus(battery_level=battery, firmware_version=f"{major}.{minor}.{patch}.{build}")


# ------------------------------------------------------------------
# Encoders (used by the wireless simulator and tests)
# ------------------------------------------------------------------


def _header(kind: FrameKind, session_number: int, timestamp: datetime) -> bytes:
    epoch_ms = int(timestamp.timestamp() * 1000)
    return struct.pack(FRAME_HEADER_FORMAT, int(kind), session_number, epoch_ms)


def encode_emg_frame(session_number: int, timestamp: datetime, samples: Sequence[int]) -> bytes:
    return _header(FrameKind.EMG, session_number, timestamp) + struct.pack(f"<{len(samples)}h", *samples)


def encode_ems_frame(
    session_number: int,
    timestamp: datetime,
    *,
    intensity: int,
    frequency: int,
    pulse_width: int,
    response: bytes = b"",
) -> bytes:
    params = bytes((intensity, frequency, pulse_width))
    return _header(FrameKind.EMS, session_number, timestamp) + params + response


def encode_status_frame(battery_level: int, firmware: tuple[int, int, int, int]) -> bytes:
    return bytes((battery_level, *firmware))
