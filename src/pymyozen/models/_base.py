"""Base model and timestamp handling for device payloads.

Every pymyozen model inherits from :class:`MyozenBaseModel` which provides:

* ``alias_generator=to_camel`` so the camelCase keys devices send
  (``sessionId``, ``batteryLevel``...) map onto snake_case fields, and the
  status read model serializes back to camelCase for the HTTP layer.
* ``populate_by_name`` so internal code can construct models with
  snake_case keyword arguments.
* base64 for byte fields in JSON, so opaque EMS response blobs survive
  the round trip to the remote store.

:data:`MyozenTimestamp` coerces epoch seconds, epoch milliseconds, ISO-8601
strings and naive datetimes into timezone-aware UTC datetimes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 100_000_000_000


def parse_timestamp(value: Any) -> datetime | None:
    """Convert an epoch (s or ms), ISO string or datetime to an aware UTC datetime.

    Returns ``None`` when the value is ``None`` or an empty string. Raises
    :class:`ValueError` for values that cannot be interpreted.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(value, (int, float)):
        try:
            ts = float(value)
            if ts >= _MS_THRESHOLD:
                ts /= 1000.0
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"timestamp out of range: {value!r}") from exc
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").replace(".", "", 1).isdigit():
            return parse_timestamp(float(text))
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    raise ValueError(f"unsupported timestamp value: {value!r}")


def utcnow() -> datetime:
    return datetime.now(UTC)


MyozenTimestamp = Annotated[datetime, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces epoch/ISO timestamps to UTC datetimes."""


class MyozenBaseModel(BaseModel):
    """Base for device payload and record models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )
