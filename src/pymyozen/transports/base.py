"""Transport protocol and the typed events every transport emits."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Protocol

from pymyozen.models._base import utcnow
from pymyozen.models.events import FrameSource


class TransportEventKind(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FRAME = "frame"
    ERROR = "error"


@dataclass(frozen=True)
class TransportEvent:
    kind: TransportEventKind
    reason: str | None = None
    error: BaseException | None = None


@dataclass(frozen=True)
class FrameEvent(TransportEvent):
    """One raw frame as received; decoding happens downstream."""

    kind: TransportEventKind = TransportEventKind.FRAME
    device_id: str = ""
    channel: str = ""
    raw: Any = b""
    source: FrameSource = FrameSource.MQTT
    received_at: datetime = field(default_factory=utcnow)


def connected_event() -> TransportEvent:
    return TransportEvent(TransportEventKind.CONNECTED)


def disconnected_event(reason: str | None = None, error: BaseException | None = None) -> TransportEvent:
    return TransportEvent(TransportEventKind.DISCONNECTED, reason=reason, error=error)


def error_event(error: BaseException) -> TransportEvent:
    return TransportEvent(TransportEventKind.ERROR, reason=str(error), error=error)


class Transport(Protocol):
    """A connection to one or more devices.

    ``connect`` returns once the connection is established and raises
    :class:`pymyozen.exceptions.MyozenTransportError` otherwise. Everything
    that happens afterwards (frames, loss of connection) is reported through
    :attr:`events`.
    """

    name: str

    @property
    def events(self) -> asyncio.Queue[TransportEvent]: ...

    @property
    def is_connected(self) -> bool: ...

    async def connect(self) -> None: ...

    async def subscribe(self, target: str) -> None: ...

    async def send(self, target: str, payload: bytes | str) -> None: ...

    async def disconnect(self) -> None: ...
