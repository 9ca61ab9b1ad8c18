"""Connection status models exposed to the outer HTTP layer."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pymyozen.models._base import MyozenBaseModel


class ConnectionStatus(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    TERMINATED = "terminated"
    NOT_CONFIGURED = "not_configured"


class ConnectionStatusView(MyozenBaseModel):
    """HTTP read model; dump with ``by_alias=True`` for camelCase keys."""

    is_connected: bool
    reconnect_attempts: int
    last_message_time: datetime | None = None
    message_count: int = 0
    status: ConnectionStatus


class ConnectionSnapshot(MyozenBaseModel):
    """Point-in-time copy of a supervisor's connection state."""

    name: str
    status: ConnectionStatus
    reconnect_attempts: int = 0
    current_backoff_ms: int = 0
    last_message_at: datetime | None = None
    message_count: int = 0

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    def to_view(self) -> ConnectionStatusView:
        return ConnectionStatusView(
            is_connected=self.is_connected,
            reconnect_attempts=self.reconnect_attempts,
            last_message_time=self.last_message_at,
            message_count=self.message_count,
            status=self.status,
        )

    @classmethod
    def not_configured(cls, name: str) -> ConnectionSnapshot:
        return cls(name=name, status=ConnectionStatus.NOT_CONFIGURED)
