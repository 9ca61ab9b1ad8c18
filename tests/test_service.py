from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest

from pymyozen.config import MyozenConfig, SimulatedDevice
from pymyozen.exceptions import MyozenError, MyozenTransportError
from pymyozen.models.connection import ConnectionStatus
from pymyozen.models.events import FrameSource, SessionKind
from pymyozen.models.session import DeviceRecord
from pymyozen.service import TelemetryService
from pymyozen.storage.memory import InMemoryStorage
from pymyozen.sync.remote import SimulatedRemotePusher
from pymyozen.transports.base import FrameEvent, TransportEvent, connected_event, disconnected_event

_SERIAL = "myozen-serial-1"


class _FakeBroker:
    """In-process stand-in for the MQTT transport."""

    def __init__(self) -> None:
        self.name = "mqtt"
        self._events: asyncio.Queue[TransportEvent] = asyncio.Queue()
        self._connected = False
        self.subscriptions: list[str] = []
        self.published: list[tuple[str, bytes | str]] = []

    @property
    def events(self) -> asyncio.Queue[TransportEvent]:
        return self._events

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        self._events.put_nowait(connected_event())

    async def subscribe(self, target: str) -> None:
        self.subscriptions.append(target)

    async def send(self, target: str, payload: bytes | str) -> None:
        self.published.append((target, payload))

    async def disconnect(self) -> None:
        if self._connected:
            self._connected = False
            self._events.put_nowait(disconnected_event("disconnect requested"))

    def publish_from_device(self, device_id: str, channel: str, document: dict[str, Any]) -> None:
        raw = json.dumps(document).encode()
        self._events.put_nowait(FrameEvent(device_id=device_id, channel=channel, raw=raw, source=FrameSource.MQTT))


def _storage() -> InMemoryStorage:
    storage = InMemoryStorage()
    storage.register_device(DeviceRecord(id="dev-1", external_id=_SERIAL, assigned_patient="pat-1"))
    return storage


def _config(**kwargs: Any) -> MyozenConfig:
    options: dict[str, Any] = {
        "wireless_scan_duration": 0.01,
        "wireless_connect_delay": 0,
        "wireless_emit_interval": 0.01,
        "simulated_devices": (SimulatedDevice(_SERIAL, "Sensor 1"),),
        "sync_enabled": False,
        "shutdown_grace": 1.0,
    }
    options.update(kwargs)
    return MyozenConfig(**options)


def _battery(storage: InMemoryStorage) -> int | None:
    device = storage.get_device("dev-1")
    return device.battery_level if device is not None else None


async def _eventually(condition: Callable[[], bool], timeout: float = 3.0) -> None:
    async with asyncio.timeout(timeout):
        while not condition():
            await asyncio.sleep(0.005)


@pytest.mark.asyncio
async def test_wireless_frames_become_session_records() -> None:
    storage = _storage()
    pusher = SimulatedRemotePusher(latency=0)

    async with TelemetryService(_config(), storage, pusher=pusher) as service:
        await _eventually(lambda: bool(storage.sessions()))
        status = service.get_status()
        await service.send_command(_SERIAL, {"action": "calibrate"})
        result = await service.run_sync()

    assert status["mqtt"].status == ConnectionStatus.NOT_CONFIGURED
    assert status[f"wireless:{_SERIAL}"].is_connected
    record = storage.sessions()[0]
    assert record.device_ref == "dev-1"
    assert record.patient_ref == "pat-1"
    assert record.metadata["deviceType"] == "myozen"
    assert result is not None
    assert result.succeeded >= 1
    assert pusher.pushed
    assert service.supervisors[f"wireless:{_SERIAL}"].status == ConnectionStatus.TERMINATED


@pytest.mark.asyncio
async def test_mqtt_frames_and_commands_flow_through_injected_transport() -> None:
    storage = _storage()
    broker = _FakeBroker()
    config = _config(wireless_enabled=False)

    async with TelemetryService(config, storage, mqtt_transport=broker) as service:
        await _eventually(lambda: broker.is_connected and len(broker.subscriptions) == 2)
        document = {"type": "EMG", "sessionId": "s-1", "dataPoints": [{"value": 0.4}]}
        broker.publish_from_device(_SERIAL, "data", document)
        broker.publish_from_device(_SERIAL, "status", {"batteryLevel": 64})
        await _eventually(lambda: bool(storage.sessions()))
        await _eventually(lambda: _battery(storage) == 64)

        await service.send_command(_SERIAL, {"action": "start", "level": 3})
        views = {name: view.model_dump(mode="json", by_alias=True) for name, view in service.get_status().items()}

    assert broker.subscriptions == ["devices/+/data", "devices/+/status"]
    assert broker.published == [(f"devices/{_SERIAL}/command", '{"action":"start","level":3}')]
    assert views["mqtt"]["isConnected"] is True
    assert views["mqtt"]["messageCount"] == 2
    assert views["wireless"]["status"] == "not_configured"
    (record,) = storage.sessions(SessionKind.EMG)
    assert record.session_id == "s-1"
    assert not broker.is_connected


@pytest.mark.asyncio
async def test_unreachable_device_and_unknown_connection() -> None:
    service = TelemetryService(_config(wireless_enabled=False), _storage())

    with pytest.raises(MyozenError):
        await service.force_sync(["r1"], SessionKind.EMG)

    async with service:
        with pytest.raises(MyozenTransportError, match="not reachable"):
            await service.send_command(_SERIAL, {"action": "stop"})
        with pytest.raises(KeyError):
            service.reconnect("mqtt")
        assert not service.get_sync_status().scheduled


@pytest.mark.asyncio
async def test_sync_scheduler_follows_config() -> None:
    config = _config(wireless_enabled=False, sync_enabled=True, sync_interval_ms=60_000)

    async with TelemetryService(config, _storage(), pusher=SimulatedRemotePusher(latency=0)) as service:
        state = service.get_sync_status()
        assert state.scheduled
        assert state.interval_ms == 60_000
        summary = await service.force_sync([], "ems")

    assert summary.total == 0
    assert not service.get_sync_status().scheduled


class _StuckDisconnectBroker(_FakeBroker):
    async def disconnect(self) -> None:
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_stop_honours_configured_shutdown_grace() -> None:
    broker = _StuckDisconnectBroker()
    service = TelemetryService(_config(wireless_enabled=False, shutdown_grace=0.2), _storage(), mqtt_transport=broker)

    await service.start()
    await _eventually(lambda: broker.is_connected)
    async with asyncio.timeout(2.0):
        await service.stop()

    assert service.supervisors["mqtt"].status == ConnectionStatus.TERMINATED
