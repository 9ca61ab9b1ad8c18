"""Custom exception hierarchy for pymyozen."""

from __future__ import annotations


class MyozenError(Exception):
    """Base exception for all pymyozen errors."""


class MyozenConfigError(MyozenError):
    """Invalid or missing configuration."""


class MyozenTransportError(MyozenError):
    """Transport-level failure (broker refused, timeout, link lost).

    Transport errors are retryable by default: the connection supervisor
    feeds them into its backoff loop instead of surfacing them to callers.
    """

    def __init__(
        self,
        message: str,
        *,
        transport: str = "",
        retryable: bool = True,
    ) -> None:
        self.transport = transport
        self.retryable = retryable
        super().__init__(message)


class MyozenDecodeError(MyozenError):
    """A raw frame could not be decoded into a device event."""

    def __init__(self, message: str, *, reason: str = "malformed") -> None:
        self.reason = reason
        super().__init__(message)


class MyozenStorageError(MyozenError):
    """The storage backend rejected or failed an operation."""

    def __init__(self, message: str, *, operation: str = "") -> None:
        self.operation = operation
        super().__init__(message)


class MyozenSyncError(MyozenError):
    """Pushing a session record to the remote store failed.

    Sync failures are isolated per record; the record stays unsynced and is
    picked up again on the next scheduled run.
    """

    def __init__(
        self,
        message: str,
        *,
        record_id: str = "",
        status_code: int | None = None,
    ) -> None:
        self.record_id = record_id
        self.status_code = status_code
        super().__init__(message)
