"""Frame decoder entry points.

``decode`` and ``decode_status`` never raise: a malformed, truncated or
unknown frame yields ``None`` and the caller counts the drop. Use
``decode_or_raise`` when the drop reason is needed.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pymyozen.exceptions import MyozenDecodeError
from pymyozen.ingestion.structured import decode_structured_frame, decode_structured_status
from pymyozen.ingestion.wire import decode_status_frame, decode_wireless_frame
from pymyozen.models.events import DeviceEvent, DeviceStatus, FrameSource

RawFrame = bytes | bytearray | memoryview | str | Mapping[str, Any]


def decode_or_raise(
    raw: RawFrame,
    source: FrameSource,
    *,
    device_id: str,
    received_at: datetime | None = None,
) -> DeviceEvent:
    """Decode a data frame, raising :class:`MyozenDecodeError` with a reason."""
    try:
        if source == FrameSource.WIRELESS:
            if not isinstance(raw, (bytes, bytearray, memoryview)):
                raise MyozenDecodeError("wireless frames must be bytes", reason="wrong_type")
            return decode_wireless_frame(raw, device_id=device_id)
        if isinstance(raw, memoryview):
            raw = raw.tobytes()
        return decode_structured_frame(raw, device_id=device_id, received_at=received_at)
    except MyozenDecodeError:
        raise
    except Exception as exc:
        # Validation errors and anything a malformed payload can trigger.
        raise MyozenDecodeError(f"frame rejected: {exc}", reason="invalid_event") from exc


def decode(
    raw: RawFrame,
    source: FrameSource,
    *,
    device_id: str,
    received_at: datetime | None = None,
) -> DeviceEvent | None:
    """Decode a data frame; ``None`` when it cannot be decoded."""
    try:
        return decode_or_raise(raw, source, device_id=device_id, received_at=received_at)
    except MyozenDecodeError:
        return None


def decode_status_or_raise(raw: RawFrame, source: FrameSource) -> DeviceStatus:
    try:
        if source == FrameSource.WIRELESS:
            if not isinstance(raw, (bytes, bytearray, memoryview)):
                raise MyozenDecodeError("wireless frames must be bytes", reason="wrong_type")
            return decode_status_frame(raw)
        if isinstance(raw, memoryview):
            raw = raw.tobytes()
        return decode_structured_status(raw)
    except MyozenDecodeError:
        raise
    except Exception as exc:
        raise MyozenDecodeError(f"status frame rejected: {exc}", reason="invalid_status") from exc


def decode_status(raw: RawFrame, source: FrameSource) -> DeviceStatus | None:
    """Decode a status frame; ``None`` when it cannot be decoded."""
    try:
        return decode_status_or_raise(raw, source)
    except MyozenDecodeError:
        return None
