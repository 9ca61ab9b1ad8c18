"""Frame pipeline: decode raw frames and feed the session aggregator.

Frames arrive on one inbox queue. A dispatcher decodes them and routes each
result to one of N workers by hashing ``(device_id, session_id)``, so events
for one session are processed in arrival order while different sessions
proceed concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass

from pymyozen._constants import STATUS_CHANNEL
from pymyozen._diagnostics import ThrottledDiagnostics
from pymyozen._redact import redact_for_log
from pymyozen.exceptions import MyozenDecodeError
from pymyozen.ingestion.aggregator import SessionAggregator, SessionOutcome
from pymyozen.ingestion.decode import decode_or_raise, decode_status_or_raise
from pymyozen.models.events import DeviceEvent, DeviceStatus
from pymyozen.transports.base import FrameEvent

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _StatusUpdate:
    device_id: str
    status: DeviceStatus


_WorkItem = DeviceEvent | _StatusUpdate | None


class IngestPipeline:
    """Decode-and-aggregate stage shared by every transport."""

    def __init__(
        self,
        aggregator: SessionAggregator,
        *,
        workers: int = 4,
        diagnostics: ThrottledDiagnostics | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._aggregator = aggregator
        self._logger = logger or _logger
        self._diagnostics = diagnostics or ThrottledDiagnostics(self._logger)
        self._inbox: asyncio.Queue[FrameEvent | None] = asyncio.Queue()
        self._queues: list[asyncio.Queue[_WorkItem]] = [asyncio.Queue() for _ in range(workers)]
        self._dispatcher: asyncio.Task[None] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._outcomes: Counter[SessionOutcome] = Counter()
        self._closing = False

    @property
    def inbox(self) -> asyncio.Queue[FrameEvent | None]:
        return self._inbox

    @property
    def diagnostics(self) -> ThrottledDiagnostics:
        return self._diagnostics

    @property
    def outcomes(self) -> dict[SessionOutcome, int]:
        return dict(self._outcomes)

    @property
    def is_running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    def submit(self, frame: FrameEvent) -> None:
        if self._closing:
            self._diagnostics.record("closing", "Pipeline closing, dropping frame from device=%s", frame.device_id)
            return
        self._inbox.put_nowait(frame)

    def start(self) -> None:
        if self.is_running:
            return
        self._closing = False
        loop = asyncio.get_running_loop()
        self._workers = [
            loop.create_task(self._work(queue), name=f"myozen-ingest-{index}")
            for index, queue in enumerate(self._queues)
        ]
        self._dispatcher = loop.create_task(self._dispatch(), name="myozen-ingest-dispatch")
        self._logger.debug("Ingest pipeline started workers=%d", len(self._workers))

    async def join(self) -> None:
        """Wait until every submitted frame has been processed."""
        await self._inbox.join()
        for queue in self._queues:
            await queue.join()

    async def stop(self, grace: float = 10.0) -> None:
        """Drain queued frames within *grace* seconds, then cancel."""
        if self._dispatcher is None:
            return
        self._closing = True
        self._inbox.put_nowait(None)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + grace
        tasks = [self._dispatcher, *self._workers]
        _done, pending = await asyncio.wait(tasks, timeout=grace)
        if pending:
            self._logger.warning("Ingest pipeline drain timed out, cancelling %d task(s)", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        await self._aggregator.drain(timeout=max(0.0, deadline - loop.time()))
        self._dispatcher = None
        self._workers = []
        self._logger.debug("Ingest pipeline stopped outcomes=%s", dict(self._outcomes))

    def _route(self, item: DeviceEvent | _StatusUpdate) -> None:
        if isinstance(item, DeviceEvent):
            key: tuple[str, ...] = item.key
        else:
            key = (item.device_id,)
        self._queues[hash(key) % len(self._queues)].put_nowait(item)

    async def _dispatch(self) -> None:
        while True:
            frame = await self._inbox.get()
            if frame is None:
                for queue in self._queues:
                    queue.put_nowait(None)
                self._inbox.task_done()
                return
            try:
                item = self._decode(frame)
                if item is not None:
                    self._route(item)
            except Exception:
                self._logger.exception("Unexpected dispatch failure device=%s, dropping frame", frame.device_id)
                self._outcomes[SessionOutcome.DROPPED] += 1
            finally:
                self._inbox.task_done()

    def _decode(self, frame: FrameEvent) -> DeviceEvent | _StatusUpdate | None:
        try:
            if frame.channel == STATUS_CHANNEL:
                status = decode_status_or_raise(frame.raw, frame.source)
                return _StatusUpdate(frame.device_id, status)
            return decode_or_raise(
                frame.raw,
                frame.source,
                device_id=frame.device_id,
                received_at=frame.received_at,
            )
        except MyozenDecodeError as exc:
            self._diagnostics.record(
                f"decode:{exc.reason}",
                "Dropping undecodable %s frame device=%s reason=%s",
                frame.source,
                frame.device_id,
                exc.reason,
            )
            self._logger.debug("Undecodable frame payload=%s", redact_for_log(frame.raw))
            return None

    async def _work(self, queue: asyncio.Queue[_WorkItem]) -> None:
        while True:
            item = await queue.get()
            try:
                if item is None:
                    return
                if isinstance(item, _StatusUpdate):
                    await self._aggregator.handle_status(item.device_id, item.status)
                    continue
                outcome = await self._aggregator.handle(item)
                self._outcomes[outcome] += 1
            except Exception:
                self._logger.exception("Unexpected ingest failure, dropping item")
                self._outcomes[SessionOutcome.DROPPED] += 1
            finally:
                queue.task_done()
