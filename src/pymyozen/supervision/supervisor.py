"""Connection supervisor: keeps one transport connected with exponential backoff.

State machine::

    idle -> connecting -> connected -> disconnected -> reconnecting -> connecting ...
                                                   \\-> terminated (attempts exhausted or stop)

Frames received while connected are counted and handed to ``frame_sink``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime

from pymyozen.config import ReconnectPolicy
from pymyozen.exceptions import MyozenTransportError
from pymyozen.models.connection import ConnectionSnapshot, ConnectionStatus
from pymyozen.supervision.policy import Backoff
from pymyozen.transports.base import FrameEvent, Transport, TransportEvent, TransportEventKind

_logger = logging.getLogger(__name__)


class ConnectionSupervisor:
    """Drive one :class:`Transport` through connect, loss and reconnect."""

    def __init__(
        self,
        transport: Transport,
        *,
        policy: ReconnectPolicy,
        frame_sink: Callable[[FrameEvent], None],
        connect_timeout: float = 10.0,
        subscriptions: Sequence[str] = (),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._policy = policy
        self._frame_sink = frame_sink
        self._connect_timeout = connect_timeout
        self._subscriptions = tuple(subscriptions)
        self._sleep = sleep
        self._logger = logger or _logger
        self._backoff = Backoff(policy)
        self._status = ConnectionStatus.IDLE
        self._message_count = 0
        self._last_message_at: datetime | None = None
        self._task: asyncio.Task[None] | None = None
        self._wake = asyncio.Event()
        self._stopping = False
        self._reconnect_requested = False

    @property
    def name(self) -> str:
        return self._transport.name

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    def snapshot(self) -> ConnectionSnapshot:
        return ConnectionSnapshot(
            name=self.name,
            status=self._status,
            reconnect_attempts=self._backoff.attempts,
            current_backoff_ms=self._backoff.current_ms,
            last_message_at=self._last_message_at,
            message_count=self._message_count,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stopping = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"myozen-supervisor-{self.name}")

    def request_reconnect(self) -> None:
        """Skip the pending backoff wait, or revive a terminated connection."""
        if self._stopping:
            return
        if self._status == ConnectionStatus.TERMINATED:
            self._logger.info("Reconnect requested for terminated connection %s", self.name)
            self._backoff.reset()
            self._set_status(ConnectionStatus.IDLE)
            self.start()
            return
        if self._status in (ConnectionStatus.DISCONNECTED, ConnectionStatus.RECONNECTING):
            self._reconnect_requested = True
            self._wake.set()

    async def stop(self, timeout: float = 5.0) -> None:
        """Disconnect and terminate; the supervisor does not restart afterwards."""
        self._stopping = True
        self._wake.set()
        try:
            await asyncio.wait_for(self._transport.disconnect(), timeout)
        except (MyozenTransportError, OSError, TimeoutError):
            self._logger.warning("Disconnect of %s failed during stop", self.name, exc_info=True)
        task = self._task
        if task is not None and not task.done():
            _done, pending = await asyncio.wait({task}, timeout=timeout)
            if pending:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self._set_status(ConnectionStatus.TERMINATED)

    async def wait_closed(self) -> None:
        """Wait for the run loop to end (terminated or stopped)."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def _set_status(self, status: ConnectionStatus) -> None:
        if status != self._status:
            self._logger.debug("Connection %s: %s -> %s", self.name, self._status, status)
            self._status = status

    async def _run(self) -> None:
        while not self._stopping:
            self._set_status(ConnectionStatus.CONNECTING)
            self._forward_pending_frames()
            if await self._try_connect():
                self._backoff.reset()
                self._set_status(ConnectionStatus.CONNECTED)
                self._logger.info("Connection %s established", self.name)
                reason = await self._pump()
                if self._stopping:
                    break
                self._logger.warning("Connection %s lost: %s", self.name, reason)

            self._set_status(ConnectionStatus.DISCONNECTED)
            if self._stopping:
                break
            if self._backoff.exhausted:
                self._logger.error(
                    "Connection %s terminated after %d reconnect attempts",
                    self.name,
                    self._backoff.attempts,
                )
                self._set_status(ConnectionStatus.TERMINATED)
                return

            self._set_status(ConnectionStatus.RECONNECTING)
            delay_ms = self._backoff.next_delay_ms()
            self._logger.info(
                "Reconnecting %s in %d ms (attempt %d/%d)",
                self.name,
                delay_ms,
                self._backoff.attempts,
                self._policy.max_attempts,
            )
            await self._backoff_wait(delay_ms / 1000)

        self._set_status(ConnectionStatus.TERMINATED)

    async def _try_connect(self) -> bool:
        try:
            await asyncio.wait_for(self._transport.connect(), self._connect_timeout)
            for target in self._subscriptions:
                await self._transport.subscribe(target)
        except (MyozenTransportError, OSError, TimeoutError) as exc:
            self._logger.warning("Connect to %s failed: %s", self.name, str(exc) or type(exc).__name__)
            await self._cleanup_failed_connect()
            return False
        return True

    async def _cleanup_failed_connect(self) -> None:
        try:
            await self._transport.disconnect()
        except (MyozenTransportError, OSError):
            self._logger.debug("Cleanup after failed connect of %s raised", self.name, exc_info=True)

    async def _backoff_wait(self, seconds: float) -> None:
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waker = asyncio.ensure_future(self._wake.wait())
        try:
            await asyncio.wait({sleeper, waker}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (sleeper, waker):
                pending.cancel()
            await asyncio.gather(sleeper, waker, return_exceptions=True)
        if self._reconnect_requested:
            self._logger.info("Explicit reconnect of %s, skipping backoff", self.name)
            self._reconnect_requested = False
        if not self._stopping:
            self._wake.clear()

    async def _next_event(self) -> TransportEvent | None:
        """Next transport event, or ``None`` once stop is requested."""
        getter = asyncio.ensure_future(self._transport.events.get())
        waker = asyncio.ensure_future(self._wake.wait())
        try:
            await asyncio.wait({getter, waker}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waker.cancel()
            if not getter.done():
                getter.cancel()
            await asyncio.gather(getter, waker, return_exceptions=True)
        if getter.cancelled() or getter.exception() is not None:
            return None
        return getter.result()

    async def _pump(self) -> str:
        """Consume events while connected; return the reason the connection ended."""
        while True:
            if self._stopping:
                return "stopped"
            event = await self._next_event()
            if event is None:
                if self._stopping:
                    return "stopped"
                # Reconnect requests only apply while disconnected.
                self._wake.clear()
                continue
            if isinstance(event, FrameEvent):
                self._record_frame(event)
            elif event.kind == TransportEventKind.DISCONNECTED:
                return event.reason or "disconnected"
            elif event.kind == TransportEventKind.ERROR:
                error = event.error
                if isinstance(error, MyozenTransportError) and not error.retryable:
                    return f"fatal transport error: {error}"
                self._logger.warning("Transport %s reported error: %s", self.name, event.reason)

    def _record_frame(self, frame: FrameEvent) -> None:
        self._message_count += 1
        self._last_message_at = frame.received_at
        self._frame_sink(frame)

    def _forward_pending_frames(self) -> None:
        # Late frames from the previous connection are still data; stale
        # lifecycle events are not.
        events = self._transport.events
        while not events.empty():
            event = events.get_nowait()
            if isinstance(event, FrameEvent):
                self._record_frame(event)
