from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from pymyozen.exceptions import MyozenStorageError
from pymyozen.models.events import Sample, SessionKind
from pymyozen.models.session import DeviceRecord, SessionRecord
from pymyozen.storage.memory import InMemoryStorage

_T0 = datetime(2026, 1, 1, tzinfo=UTC)


def _record(session_id: str = "S1", *, start: datetime = _T0, kind: SessionKind = SessionKind.EMG) -> SessionRecord:
    return SessionRecord(
        kind=kind,
        device_ref="dev-1",
        session_id=session_id,
        start_time=start,
        payload=[Sample(timestamp=start, value=1.0)],
    )


@pytest.mark.asyncio
async def test_create_then_find_open_session() -> None:
    storage = InMemoryStorage()
    record_id = await storage.create_session(_record())

    found = await storage.find_open_session("dev-1", "S1", kind=SessionKind.EMG)
    assert found is not None
    assert found.id == record_id
    assert await storage.find_open_session("dev-1", "S1", kind=SessionKind.EMS) is None
    assert await storage.find_open_session("dev-2", "S1", kind=SessionKind.EMG) is None


@pytest.mark.asyncio
async def test_duplicate_create_is_rejected() -> None:
    storage = InMemoryStorage()
    await storage.create_session(_record())

    with pytest.raises(MyozenStorageError) as excinfo:
        await storage.create_session(_record())
    assert excinfo.value.operation == "create_session"


@pytest.mark.asyncio
async def test_reads_return_copies() -> None:
    storage = InMemoryStorage()
    record_id = await storage.create_session(_record())

    copy = storage.get_session(record_id)
    assert copy is not None
    copy.payload.clear()

    stored = storage.get_session(record_id)
    assert stored is not None
    assert stored.sample_count == 1


@pytest.mark.asyncio
async def test_append_is_additive_and_end_time_monotonic() -> None:
    storage = InMemoryStorage()
    record_id = await storage.create_session(_record())
    later = _T0 + timedelta(minutes=1)

    await storage.append_to_session(record_id, [Sample(timestamp=later, value=2.0)], later)
    await storage.append_to_session(record_id, [Sample(timestamp=_T0, value=3.0)], _T0)

    record = storage.get_session(record_id)
    assert record is not None
    assert [s.value for s in record.payload] == [1.0, 2.0, 3.0]
    assert record.end_time == later


@pytest.mark.asyncio
async def test_append_to_unknown_record_fails() -> None:
    with pytest.raises(MyozenStorageError):
        await InMemoryStorage().append_to_session("nope", [], _T0)


@pytest.mark.asyncio
async def test_find_unsynced_is_oldest_first_and_limited() -> None:
    storage = InMemoryStorage()
    ids = [
        await storage.create_session(_record(f"S{i}", start=_T0 - timedelta(seconds=i)))
        for i in range(5)
    ]
    await storage.create_session(_record("E1", kind=SessionKind.EMS))

    pending = await storage.find_unsynced(SessionKind.EMG, 3)

    assert [record.id for record in pending] == [ids[4], ids[3], ids[2]]
    assert await storage.find_unsynced(SessionKind.EMG, 0) == []

    await storage.mark_synced(ids[4], _T0)
    assert ids[4] not in [record.id for record in await storage.find_unsynced(SessionKind.EMG, 10)]


@pytest.mark.asyncio
async def test_find_sessions_filters_by_kind_and_dedupes() -> None:
    storage = InMemoryStorage()
    emg_id = await storage.create_session(_record("S1"))
    ems_id = await storage.create_session(_record("S1", kind=SessionKind.EMS))

    found = await storage.find_sessions(SessionKind.EMG, [emg_id, emg_id, ems_id, "missing"])

    assert [record.id for record in found] == [emg_id]


@pytest.mark.asyncio
async def test_mark_synced_unknown_record_fails() -> None:
    with pytest.raises(MyozenStorageError):
        await InMemoryStorage().mark_synced("nope", _T0)


@pytest.mark.asyncio
async def test_device_lookup_and_status_update() -> None:
    storage = InMemoryStorage()
    storage.register_device(DeviceRecord(id="dev-1", external_id="SERIAL-1", name="Sensor"))

    device = await storage.find_device_by_external_id("SERIAL-1")
    assert device is not None
    assert device.id == "dev-1"
    assert await storage.find_device_by_external_id("SERIAL-2") is None

    await storage.update_device_status("dev-1", {"battery_level": 42, "name": "ignored", "last_connected": _T0})

    updated = storage.get_device("dev-1")
    assert updated is not None
    assert updated.battery_level == 42
    assert updated.name == "Sensor"
    assert updated.last_connected == _T0

    with pytest.raises(MyozenStorageError):
        await storage.update_device_status("dev-9", {"battery_level": 1})
