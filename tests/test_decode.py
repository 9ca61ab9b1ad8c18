from __future__ import annotations

import json
import struct
from datetime import UTC, datetime

import pytest

from pymyozen.exceptions import MyozenDecodeError
from pymyozen.ingestion.decode import decode, decode_or_raise, decode_status, decode_status_or_raise
from pymyozen.ingestion.wire import encode_emg_frame, encode_ems_frame, encode_status_frame
from pymyozen.models.events import FrameSource, SessionKind

_TS = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
_TS_MS = int(_TS.timestamp() * 1000)


# ------------------------------------------------------------------
# Wireless binary frames
# ------------------------------------------------------------------


@pytest.mark.parametrize("size", [0, 1, 12])
def test_frame_shorter_than_header_decodes_to_none(size: int) -> None:
    assert decode(b"\x01" * size, FrameSource.WIRELESS, device_id="D1") is None


def test_short_frame_reason_is_truncated() -> None:
    with pytest.raises(MyozenDecodeError) as excinfo:
        decode_or_raise(b"\x01\x02", FrameSource.WIRELESS, device_id="D1")
    assert excinfo.value.reason == "truncated"


def test_unknown_frame_kind_is_rejected() -> None:
    raw = struct.pack("<BIQ", 9, 7, _TS_MS)
    with pytest.raises(MyozenDecodeError) as excinfo:
        decode_or_raise(raw, FrameSource.WIRELESS, device_id="D1")
    assert excinfo.value.reason == "unknown_kind"
    assert decode(raw, FrameSource.WIRELESS, device_id="D1") is None


def test_emg_frame_decodes_samples_in_order() -> None:
    raw = encode_emg_frame(42, _TS, [10, -20, 300])

    event = decode(raw, FrameSource.WIRELESS, device_id="D1")

    assert event is not None
    assert event.kind == SessionKind.EMG
    assert event.session_id == "42"
    assert event.timestamp == _TS
    assert [sample.value for sample in event.samples] == [10.0, -20.0, 300.0]
    assert event.source == FrameSource.WIRELESS
    assert event.metadata == {"source": "bluetooth", "deviceType": "myozen"}


def test_emg_frame_ignores_dangling_odd_byte() -> None:
    raw = encode_emg_frame(1, _TS, [5, 6]) + b"\x7f"

    event = decode(raw, FrameSource.WIRELESS, device_id="D1")

    assert event is not None
    assert [sample.value for sample in event.samples] == [5.0, 6.0]


def test_emg_header_only_frame_has_no_samples() -> None:
    event = decode(encode_emg_frame(1, _TS, []), FrameSource.WIRELESS, device_id="D1")
    assert event is not None
    assert event.samples == ()


def test_ems_frame_decodes_parameters_and_response_blob() -> None:
    raw = encode_ems_frame(7, _TS, intensity=30, frequency=50, pulse_width=200, response=b"\x01\x02\x03")

    event = decode(raw, FrameSource.WIRELESS, device_id="D1")

    assert event is not None
    assert event.kind == SessionKind.EMS
    assert event.stimulation_parameters is not None
    assert event.stimulation_parameters.intensity == 30
    assert event.stimulation_parameters.frequency == 50
    assert event.stimulation_parameters.pulse_width == 200
    assert len(event.samples) == 1
    assert event.samples[0].blob == b"\x01\x02\x03"


def test_ems_frame_without_parameters_is_truncated() -> None:
    raw = struct.pack("<BIQ", 2, 7, _TS_MS) + b"\x01"
    with pytest.raises(MyozenDecodeError) as excinfo:
        decode_or_raise(raw, FrameSource.WIRELESS, device_id="D1")
    assert excinfo.value.reason == "truncated"


def test_wireless_frame_must_be_bytes() -> None:
    with pytest.raises(MyozenDecodeError) as excinfo:
        decode_or_raise("not bytes", FrameSource.WIRELESS, device_id="D1")
    assert excinfo.value.reason == "wrong_type"


def test_wireless_status_frame() -> None:
    status = decode_status(encode_status_frame(87, (1, 2, 0, 7)), FrameSource.WIRELESS)
    assert status is not None
    assert status.battery_level == 87
    assert status.firmware_version == "1.2.0.7"


def test_wireless_status_frame_out_of_range_battery() -> None:
    with pytest.raises(MyozenDecodeError) as excinfo:
        decode_status_or_raise(bytes((150, 1, 0, 0, 0)), FrameSource.WIRELESS)
    assert excinfo.value.reason == "out_of_range"
    assert decode_status(b"\x50", FrameSource.WIRELESS) is None


# ------------------------------------------------------------------
# Structured MQTT documents
# ------------------------------------------------------------------


def test_emg_document_decodes_data_points() -> None:
    payload = json.dumps(
        {
            "type": "EMG",
            "sessionId": "s-17",
            "timestamp": _TS_MS,
            "dataPoints": [{"value": 12.5, "channel": 1}, {"value": 13.0, "timestamp": "2026-01-01T12:00:01Z"}],
            "metadata": {"sampleRate": 1000},
            "batteryLevel": 64,
        }
    ).encode()

    event = decode(payload, FrameSource.MQTT, device_id="D1")

    assert event is not None
    assert event.kind == SessionKind.EMG
    assert event.session_id == "s-17"
    assert event.timestamp == _TS
    assert [(s.value, s.channel) for s in event.samples] == [(12.5, 1), (13.0, 0)]
    assert event.samples[0].timestamp == _TS
    assert event.samples[1].timestamp == datetime(2026, 1, 1, 12, 0, 1, tzinfo=UTC)
    assert event.metadata == {"sampleRate": 1000}
    assert event.status is not None
    assert event.status.battery_level == 64


def test_ems_document_decodes_stimulation_fields() -> None:
    payload = {
        "type": "ems",
        "sessionId": 18,
        "stimulationParameters": {"frequency": 50, "pulseWidth": 300, "waveform": "biphasic"},
        "stimulationPattern": "burst",
        "responseData": [{"value": 0.4}],
    }

    event = decode(payload, FrameSource.MQTT, device_id="D1", received_at=_TS)

    assert event is not None
    assert event.kind == SessionKind.EMS
    assert event.session_id == "18"
    assert event.timestamp == _TS
    assert event.stimulation_parameters is not None
    assert event.stimulation_parameters.pulse_width == 300
    assert event.stimulation_parameters.waveform == "biphasic"
    assert event.stimulation_pattern == "burst"
    assert event.status is None


@pytest.mark.parametrize(
    ("payload", "reason"),
    [
        (b"{not json", "invalid_json"),
        (b"[1, 2]", "not_object"),
        (b'{"type": "ecg", "sessionId": "s"}', "unknown_kind"),
        (b'{"type": "emg"}', "invalid_document"),
        (b'{"type": "emg", "sessionId": "s", "dataPoints": [{"value": "abc"}]}', "invalid_document"),
    ],
)
def test_malformed_documents_are_rejected(payload: bytes, reason: str) -> None:
    with pytest.raises(MyozenDecodeError) as excinfo:
        decode_or_raise(payload, FrameSource.MQTT, device_id="D1")
    assert excinfo.value.reason == reason
    assert decode(payload, FrameSource.MQTT, device_id="D1") is None


def test_empty_session_id_is_rejected() -> None:
    payload = {"type": "emg", "sessionId": "  ", "dataPoints": []}
    assert decode(payload, FrameSource.MQTT, device_id="D1") is None


def test_structured_status_document() -> None:
    status = decode_status(b'{"batteryLevel": 40, "firmwareVersion": "2.1.0"}', FrameSource.MQTT)
    assert status is not None
    assert status.fields() == {"battery_level": 40, "firmware_version": "2.1.0"}
    assert decode_status(b'{"batteryLevel": 400}', FrameSource.MQTT) is None


def test_timestamp_too_large_for_float_is_rejected() -> None:
    payload = b'{"type": "emg", "sessionId": "s1", "timestamp": ' + b"9" * 400 + b', "dataPoints": [{"value": 1}]}'

    with pytest.raises(MyozenDecodeError):
        decode_or_raise(payload, FrameSource.MQTT, device_id="D1")
    assert decode(payload, FrameSource.MQTT, device_id="D1") is None


def test_deeply_nested_document_is_rejected() -> None:
    depth = 100_000
    payload = b'{"type": "emg", "sessionId": "s1", "metadata": ' + b"[" * depth + b"]" * depth + b"}"

    with pytest.raises(MyozenDecodeError) as excinfo:
        decode_or_raise(payload, FrameSource.MQTT, device_id="D1")
    assert excinfo.value.reason == "invalid_json"
    assert decode_status(payload, FrameSource.MQTT) is None
