"""Tests for Pydantic model parsing with MyozenBaseModel."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from pymyozen.models import (
    ConnectionSnapshot,
    ConnectionStatus,
    DeviceEvent,
    DeviceStatus,
    Sample,
    SessionKind,
    SessionRecord,
)
from pymyozen.models._base import parse_timestamp

_T0 = datetime(2026, 1, 1, tzinfo=UTC)

# ------------------------------------------------------------------
# Timestamps
# ------------------------------------------------------------------


class TestParseTimestamp:
    def test_epoch_seconds_and_millis_agree(self) -> None:
        seconds = int(_T0.timestamp())
        assert parse_timestamp(seconds) == _T0
        assert parse_timestamp(seconds * 1000) == _T0
        assert parse_timestamp(str(seconds)) == _T0

    def test_iso_strings(self) -> None:
        assert parse_timestamp("2026-01-01T00:00:00Z") == _T0
        assert parse_timestamp("2026-01-01T00:00:00") == _T0

    def test_naive_datetime_is_utc(self) -> None:
        assert parse_timestamp(datetime(2026, 1, 1)) == _T0

    def test_empty_values(self) -> None:
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    @pytest.mark.parametrize("value", [True, "yesterday", [1], 10**400, "9" * 400])
    def test_invalid_values_raise(self, value: object) -> None:
        with pytest.raises(ValueError):
            parse_timestamp(value)


# ------------------------------------------------------------------
# Events
# ------------------------------------------------------------------


class TestSessionKind:
    def test_parse_is_case_insensitive(self) -> None:
        assert SessionKind.parse("EMG") is SessionKind.EMG
        assert SessionKind.parse(" ems ") is SessionKind.EMS
        assert SessionKind.parse(SessionKind.EMS) is SessionKind.EMS

    def test_unknown_kind(self) -> None:
        with pytest.raises(ValueError, match="unknown session kind"):
            SessionKind.parse("ecg")


class TestDeviceEvent:
    def test_camel_case_keys_and_numeric_session_id(self) -> None:
        event = DeviceEvent.model_validate(
            {
                "deviceId": "D1",
                "kind": "emg",
                "sessionId": 42,
                "timestamp": 1767225600000,
                "samples": [{"timestamp": "2026-01-01T00:00:00Z", "value": 0.5}],
                "status": {"batteryLevel": 80},
            }
        )

        assert event.session_id == "42"
        assert event.timestamp == _T0
        assert event.key == ("D1", "42")
        assert event.sample_count == 1
        assert event.status == DeviceStatus(battery_level=80)

    @pytest.mark.parametrize("session_id", ["", "   ", None, True])
    def test_blank_session_id_rejected(self, session_id: object) -> None:
        with pytest.raises(ValidationError):
            DeviceEvent(
                device_id="D1",
                kind=SessionKind.EMG,
                session_id=session_id,  # type: ignore[arg-type]
                timestamp=_T0,
            )

    def test_events_are_immutable(self) -> None:
        event = DeviceEvent(device_id="D1", kind=SessionKind.EMG, session_id="S1", timestamp=_T0)
        with pytest.raises(ValidationError):
            event.session_id = "S2"  # type: ignore[misc]


class TestDeviceStatus:
    def test_fields_drop_missing_values(self) -> None:
        assert DeviceStatus(firmware_version="1.2.0").fields() == {"firmware_version": "1.2.0"}
        assert DeviceStatus().is_empty

    def test_battery_level_is_bounded(self) -> None:
        with pytest.raises(ValidationError):
            DeviceStatus(battery_level=120)


# ------------------------------------------------------------------
# Records and status views
# ------------------------------------------------------------------


class TestSessionRecord:
    def test_blob_survives_json_round_trip(self) -> None:
        record = SessionRecord(
            kind=SessionKind.EMS,
            device_ref="dev-1",
            session_id="E1",
            start_time=_T0,
            payload=[Sample(timestamp=_T0, blob=b"\x00\xff")],
        )

        dumped = record.model_dump_json(by_alias=True)
        assert '"sessionId":"E1"' in dumped
        assert SessionRecord.model_validate_json(dumped).payload[0].blob == b"\x00\xff"

    def test_unknown_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SessionRecord.model_validate(
                {"kind": "emg", "deviceRef": "d", "sessionId": "s", "startTime": _T0, "colour": "red"}
            )


class TestConnectionStatusView:
    def test_view_serializes_camel_case(self) -> None:
        snapshot = ConnectionSnapshot(
            name="mqtt",
            status=ConnectionStatus.CONNECTED,
            reconnect_attempts=0,
            last_message_at=_T0,
            message_count=7,
        )

        view = snapshot.to_view().model_dump(mode="json", by_alias=True)

        assert view == {
            "isConnected": True,
            "reconnectAttempts": 0,
            "lastMessageTime": "2026-01-01T00:00:00Z",
            "messageCount": 7,
            "status": "connected",
        }

    def test_not_configured(self) -> None:
        snapshot = ConnectionSnapshot.not_configured("wireless")
        assert not snapshot.is_connected
        assert snapshot.to_view().status == ConnectionStatus.NOT_CONFIGURED
