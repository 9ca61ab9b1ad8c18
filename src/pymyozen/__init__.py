"""pymyozen - Async EMG/EMS telemetry ingestion for MyoZen devices."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pymyozen")
except PackageNotFoundError:
    __version__ = "0+local"
from pymyozen.config import MyozenConfig, ReconnectPolicy, SimulatedDevice
from pymyozen.exceptions import (
    MyozenConfigError,
    MyozenDecodeError,
    MyozenError,
    MyozenStorageError,
    MyozenSyncError,
    MyozenTransportError,
)
from pymyozen.ingestion import IngestPipeline, SessionAggregator, SessionOutcome, decode, decode_status
from pymyozen.models import (
    ConnectionSnapshot,
    ConnectionStatus,
    ConnectionStatusView,
    DeviceEvent,
    DeviceRecord,
    DeviceStatus,
    FrameSource,
    Sample,
    SessionKind,
    SessionRecord,
    StimulationParameters,
    SyncRunResult,
    SyncState,
    SyncSummary,
)
from pymyozen.service import TelemetryService
from pymyozen.storage import InMemoryStorage, SessionStorage
from pymyozen.supervision import ConnectionSupervisor, compute_backoff_ms
from pymyozen.sync import HttpRemotePusher, RemotePusher, SimulatedRemotePusher, SyncScheduler

__all__ = [
    "__version__",
    "ConnectionSnapshot",
    "ConnectionStatus",
    "ConnectionStatusView",
    "ConnectionSupervisor",
    "DeviceEvent",
    "DeviceRecord",
    "DeviceStatus",
    "FrameSource",
    "HttpRemotePusher",
    "InMemoryStorage",
    "IngestPipeline",
    "MyozenConfig",
    "MyozenConfigError",
    "MyozenDecodeError",
    "MyozenError",
    "MyozenStorageError",
    "MyozenSyncError",
    "MyozenTransportError",
    "ReconnectPolicy",
    "RemotePusher",
    "Sample",
    "SessionAggregator",
    "SessionKind",
    "SessionOutcome",
    "SessionRecord",
    "SessionStorage",
    "SimulatedDevice",
    "SimulatedRemotePusher",
    "StimulationParameters",
    "SyncRunResult",
    "SyncScheduler",
    "SyncState",
    "SyncSummary",
    "TelemetryService",
    "compute_backoff_ms",
    "decode",
    "decode_status",
]
