"""Data models for device events, session records and status."""

from pymyozen.models._base import MyozenBaseModel, MyozenTimestamp, parse_timestamp
from pymyozen.models.connection import ConnectionSnapshot, ConnectionStatus, ConnectionStatusView
from pymyozen.models.events import (
    DeviceEvent,
    DeviceStatus,
    FrameSource,
    Sample,
    SessionKind,
    StimulationParameters,
)
from pymyozen.models.session import DeviceRecord, SessionRecord, SyncStatus
from pymyozen.models.sync import SyncRunResult, SyncState, SyncSummary

__all__ = [
    "ConnectionSnapshot",
    "ConnectionStatus",
    "ConnectionStatusView",
    "DeviceEvent",
    "DeviceRecord",
    "DeviceStatus",
    "FrameSource",
    "MyozenBaseModel",
    "MyozenTimestamp",
    "Sample",
    "SessionKind",
    "SessionRecord",
    "StimulationParameters",
    "SyncRunResult",
    "SyncState",
    "SyncStatus",
    "SyncSummary",
    "parse_timestamp",
]
