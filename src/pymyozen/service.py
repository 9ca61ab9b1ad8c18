"""Top-level telemetry service wiring transports, ingestion and sync together."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

import aiohttp

from pymyozen._constants import COMMAND_CHANNEL, DATA_TOPIC_FILTER, STATUS_TOPIC_FILTER, device_topic
from pymyozen._diagnostics import ThrottledDiagnostics
from pymyozen._redact import redact_url
from pymyozen.config import MyozenConfig, SimulatedDevice
from pymyozen.exceptions import MyozenError, MyozenTransportError
from pymyozen.ingestion.aggregator import SessionAggregator
from pymyozen.ingestion.pipeline import IngestPipeline
from pymyozen.models.connection import ConnectionSnapshot, ConnectionStatusView
from pymyozen.models.events import SessionKind
from pymyozen.models.sync import SyncRunResult, SyncState, SyncSummary
from pymyozen.storage.base import SessionStorage
from pymyozen.supervision.supervisor import ConnectionSupervisor
from pymyozen.sync.remote import HttpRemotePusher, RemotePusher, SimulatedRemotePusher
from pymyozen.sync.scheduler import SyncScheduler
from pymyozen.transports.base import Transport
from pymyozen.transports.mqtt import MqttTransport
from pymyozen.transports.wireless import SimulatedWirelessLink, SimulatedWirelessScanner

_logger = logging.getLogger(__name__)

MQTT_CONNECTION = "mqtt"
WIRELESS_CONNECTION = "wireless"


class TelemetryService:
    """EMG/EMS telemetry ingestion service.

    Usage::

        async with TelemetryService(config, storage) as service:
            ...
            print(service.get_status())

    ``storage`` is the outer application's persistence adapter. Transports
    can be injected for testing; by default MQTT is built from
    ``config.broker_url`` (disabled when unset) and one simulated wireless
    link is created per discovered device.
    """

    def __init__(
        self,
        config: MyozenConfig,
        storage: SessionStorage,
        *,
        pusher: RemotePusher | None = None,
        session: aiohttp.ClientSession | None = None,
        mqtt_transport: Transport | None = None,
        link_factory: Callable[[SimulatedDevice], Transport] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._storage = storage
        self._pusher = pusher
        self._external_session = session is not None
        self._http_session = session
        self._mqtt_transport = mqtt_transport
        self._link_factory = link_factory or self._default_link
        self._sleep = sleep
        self._logger = logger or _logger
        self._diagnostics = ThrottledDiagnostics(self._logger, interval=config.diagnostic_interval)
        self._aggregator = SessionAggregator(storage, diagnostics=self._diagnostics)
        self._pipeline = IngestPipeline(
            self._aggregator,
            workers=config.ingest_workers,
            diagnostics=self._diagnostics,
        )
        self._supervisors: dict[str, ConnectionSupervisor] = {}
        self._scheduler: SyncScheduler | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._started = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TelemetryService:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    @property
    def config(self) -> MyozenConfig:
        return self._config

    @property
    def pipeline(self) -> IngestPipeline:
        return self._pipeline

    @property
    def aggregator(self) -> SessionAggregator:
        return self._aggregator

    @property
    def diagnostics(self) -> ThrottledDiagnostics:
        return self._diagnostics

    @property
    def supervisors(self) -> Mapping[str, ConnectionSupervisor]:
        return dict(self._supervisors)

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._pipeline.start()
        self._start_mqtt()
        if self._config.wireless_enabled:
            self._spawn(self._start_wireless(), name="myozen-wireless-scan")
        else:
            self._logger.info("Wireless ingestion disabled")
        self._scheduler = SyncScheduler(
            self._storage,
            self._build_pusher(),
            batch_size=self._config.sync_batch_size,
            push_timeout=self._config.sync_push_timeout,
            interval_ms=self._config.sync_interval_ms,
        )
        if self._config.sync_enabled:
            self._scheduler.start()
        self._spawn(self._report_throughput(), name="myozen-throughput")
        self._logger.info("Telemetry service started")

    async def stop(self) -> None:
        """Stop the sync timer, disconnect every transport, drain the pipeline."""
        if not self._started:
            return
        self._started = False
        if self._scheduler is not None:
            await self._scheduler.stop()
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
        grace = self._config.shutdown_grace
        await asyncio.gather(*(supervisor.stop(timeout=grace) for supervisor in self._supervisors.values()))
        await self._pipeline.stop(grace=grace)
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._logger.info("Telemetry service stopped")

    def _spawn(self, coro: Awaitable[None], *, name: str) -> None:
        task: asyncio.Task[None] = asyncio.ensure_future(coro)
        task.set_name(name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ------------------------------------------------------------------
    # Transports
    # ------------------------------------------------------------------

    def _supervise(self, transport: Transport, subscriptions: Sequence[str] = ()) -> ConnectionSupervisor:
        supervisor = ConnectionSupervisor(
            transport,
            policy=self._config.reconnect,
            frame_sink=self._pipeline.submit,
            connect_timeout=self._config.connect_timeout,
            subscriptions=subscriptions,
            sleep=self._sleep,
        )
        self._supervisors[transport.name] = supervisor
        supervisor.start()
        return supervisor

    def _start_mqtt(self) -> None:
        transport = self._mqtt_transport
        if transport is None:
            if not self._config.mqtt_enabled:
                self._logger.info("MQTT broker not configured, MQTT ingestion disabled")
                return
            transport = MqttTransport(self._config)
            self._logger.info("MQTT ingestion enabled broker=%s", redact_url(self._config.broker_url or ""))
        self._supervise(transport, subscriptions=(DATA_TOPIC_FILTER, STATUS_TOPIC_FILTER))

    def _default_link(self, device: SimulatedDevice) -> Transport:
        return SimulatedWirelessLink(
            device,
            connect_delay=self._config.wireless_connect_delay,
            emit_interval=self._config.wireless_emit_interval,
        )

    async def _start_wireless(self) -> None:
        scanner = SimulatedWirelessScanner(
            self._config.simulated_devices,
            scan_duration=self._config.wireless_scan_duration,
            sleep=self._sleep,
        )
        devices = await scanner.scan()
        for device in devices:
            self._supervise(self._link_factory(device))

    def _wireless_supervisor(self, device_id: str) -> ConnectionSupervisor | None:
        return self._supervisors.get(f"{WIRELESS_CONNECTION}:{device_id}")

    async def send_command(self, device_id: str, command: Mapping[str, Any]) -> None:
        """Send a command to a device over whichever transport reaches it.

        A connected wireless link is preferred; otherwise the command is
        published on ``devices/{device_id}/command``. Raises
        :class:`MyozenTransportError` when neither is connected.
        """
        payload = json.dumps(dict(command), separators=(",", ":"))
        wireless = self._wireless_supervisor(device_id)
        if wireless is not None and wireless.transport.is_connected:
            await wireless.transport.send(COMMAND_CHANNEL, payload)
            return
        mqtt = self._supervisors.get(MQTT_CONNECTION)
        if mqtt is not None and mqtt.transport.is_connected:
            await mqtt.transport.send(device_topic(device_id, COMMAND_CHANNEL), payload)
            return
        raise MyozenTransportError(f"device not reachable: {device_id}")

    def reconnect(self, name: str) -> None:
        """Explicit reconnect trigger for one connection."""
        supervisor = self._supervisors.get(name)
        if supervisor is None:
            raise KeyError(name)
        supervisor.request_reconnect()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def snapshots(self) -> dict[str, ConnectionSnapshot]:
        snapshots = {name: supervisor.snapshot() for name, supervisor in self._supervisors.items()}
        if MQTT_CONNECTION not in snapshots:
            snapshots[MQTT_CONNECTION] = ConnectionSnapshot.not_configured(MQTT_CONNECTION)
        if not self._config.wireless_enabled:
            snapshots[WIRELESS_CONNECTION] = ConnectionSnapshot.not_configured(WIRELESS_CONNECTION)
        return snapshots

    def get_status(self) -> dict[str, ConnectionStatusView]:
        """Connection name to read model; dump with ``by_alias=True``."""
        return {name: snapshot.to_view() for name, snapshot in self.snapshots().items()}

    def get_sync_status(self) -> SyncState:
        if self._scheduler is None:
            return SyncState(interval_ms=self._config.sync_interval_ms)
        return self._scheduler.state()

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def _build_pusher(self) -> RemotePusher:
        if self._pusher is not None:
            return self._pusher
        if self._config.remote_sync_url:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            return HttpRemotePusher(self._config.remote_sync_url, self._http_session)
        return SimulatedRemotePusher(latency=self._config.sync_push_latency)

    def _require_scheduler(self) -> SyncScheduler:
        if self._scheduler is None:
            raise MyozenError("Service not started. Use 'async with TelemetryService(...) as service:'")
        return self._scheduler

    async def run_sync(self) -> SyncRunResult | None:
        return await self._require_scheduler().run_once()

    async def force_sync(self, record_ids: Sequence[str], kind: SessionKind | str) -> SyncSummary:
        return await self._require_scheduler().force_sync(record_ids, kind)

    # ------------------------------------------------------------------
    # Throughput
    # ------------------------------------------------------------------

    async def _report_throughput(self) -> None:
        previous: dict[str, int] = {}
        interval = self._config.diagnostic_interval
        while True:
            await asyncio.sleep(interval)
            for name, supervisor in self._supervisors.items():
                snapshot = supervisor.snapshot()
                delta = snapshot.message_count - previous.get(name, 0)
                previous[name] = snapshot.message_count
                if delta:
                    self._logger.debug(
                        "Connection %s received %d message(s) in the last %.0fs (%d total)",
                        name,
                        delta,
                        interval,
                        snapshot.message_count,
                    )
