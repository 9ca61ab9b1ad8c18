"""Simulated short-range wireless transport.

No radio stack is used: the scanner "discovers" the configured device
roster after the scan duration, and each link emits synthetic binary frames
in the same wire format a real device would send.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Sequence

from pymyozen._constants import DATA_CHANNEL, STATUS_CHANNEL
from pymyozen._redact import redact_for_log
from pymyozen.config import SimulatedDevice
from pymyozen.exceptions import MyozenTransportError
from pymyozen.ingestion.wire import encode_emg_frame, encode_ems_frame, encode_status_frame
from pymyozen.models._base import utcnow
from pymyozen.models.events import FrameSource
from pymyozen.transports.base import (
    FrameEvent,
    TransportEvent,
    connected_event,
    disconnected_event,
)

_logger = logging.getLogger(__name__)

STATUS_PROBABILITY = 0.2
EMG_SAMPLES_PER_FRAME = 32
_FIRMWARE = (1, 2, 0, 7)


class SimulatedWirelessScanner:
    """Bounded-duration discovery over the configured device roster."""

    def __init__(
        self,
        devices: Sequence[SimulatedDevice],
        *,
        scan_duration: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._devices = tuple(devices)
        self._scan_duration = scan_duration
        self._sleep = sleep
        self._logger = logger or _logger
        self._scanning = False

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    async def scan(self) -> list[SimulatedDevice]:
        self._logger.info("Scanning for wireless devices (%.1fs)", self._scan_duration)
        self._scanning = True
        try:
            await self._sleep(self._scan_duration)
        finally:
            self._scanning = False
        for device in self._devices:
            self._logger.info("Discovered wireless device %s (%s)", device.id, device.name)
        return list(self._devices)


class SimulatedWirelessLink:
    """Connection to one simulated device.

    After a handshake delay the link emits one EMG or EMS frame (chosen at
    random) every ``emit_interval`` seconds, followed now and then by a
    status frame, until it is disconnected or dropped.
    """

    def __init__(
        self,
        device: SimulatedDevice,
        *,
        connect_delay: float = 1.0,
        emit_interval: float = 5.0,
        status_probability: float = STATUS_PROBABILITY,
        rng: random.Random | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.name = f"wireless:{device.id}"
        self.device = device
        self._connect_delay = connect_delay
        self._emit_interval = emit_interval
        self._status_probability = status_probability
        self._rng = rng or random.Random()
        self._logger = logger or _logger
        self._events: asyncio.Queue[TransportEvent] = asyncio.Queue()
        self._emitter: asyncio.Task[None] | None = None
        self._connected = False
        self._subscriptions: set[str] = set()

    @property
    def events(self) -> asyncio.Queue[TransportEvent]:
        return self._events

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        await self._stop_emitter()
        self._logger.info("Connecting to wireless device %s", self.device.id)
        await asyncio.sleep(self._connect_delay)
        self._connected = True
        self._events.put_nowait(connected_event())
        self._emitter = asyncio.get_running_loop().create_task(self._emit(), name=f"myozen-{self.name}")
        self._logger.info("Connected to wireless device %s", self.device.id)

    async def subscribe(self, target: str) -> None:
        self._subscriptions.add(target)

    async def send(self, target: str, payload: bytes | str) -> None:
        if not self._connected:
            raise MyozenTransportError(f"device not connected: {self.device.id}", transport=self.name)
        self._logger.info("Sent command to wireless device %s target=%s", self.device.id, target)
        self._logger.debug("Command payload=%s", redact_for_log(payload))

    async def disconnect(self) -> None:
        await self._stop_emitter()
        if self._connected:
            self._connected = False
            self._events.put_nowait(disconnected_event("disconnect requested"))

    async def drop(self, reason: str = "link lost") -> None:
        """Simulate the device going out of range."""
        await self._stop_emitter()
        if self._connected:
            self._connected = False
            self._logger.info("Wireless device %s disconnected: %s", self.device.id, reason)
            self._events.put_nowait(disconnected_event(reason))

    async def _stop_emitter(self) -> None:
        emitter = self._emitter
        self._emitter = None
        if emitter is None or emitter is asyncio.current_task():
            return
        emitter.cancel()
        await asyncio.gather(emitter, return_exceptions=True)

    async def _emit(self) -> None:
        while True:
            await asyncio.sleep(self._emit_interval)
            self._push(DATA_CHANNEL, self.next_data_frame())
            if self._rng.random() < self._status_probability:
                self._push(STATUS_CHANNEL, self.next_status_frame())

    def _push(self, channel: str, raw: bytes) -> None:
        self._events.put_nowait(
            FrameEvent(device_id=self.device.id, channel=channel, raw=raw, source=FrameSource.WIRELESS)
        )

    def next_data_frame(self) -> bytes:
        session_number = self._rng.randrange(1000)
        now = utcnow()
        if self._rng.random() < 0.5:
            samples = [max(-32768, min(32767, int(self._rng.gauss(0, 400)))) for _ in range(EMG_SAMPLES_PER_FRAME)]
            return encode_emg_frame(session_number, now, samples)
        return encode_ems_frame(
            session_number,
            now,
            intensity=self._rng.randint(10, 80),
            frequency=self._rng.randint(20, 100),
            pulse_width=self._rng.randint(100, 250),
            response=self._rng.randbytes(8),
        )

    def next_status_frame(self) -> bytes:
        return encode_status_frame(self._rng.randint(70, 100), _FIRMWARE)
