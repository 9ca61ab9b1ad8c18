"""Runtime configuration for pymyozen."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pymyozen._constants import DEFAULT_DIAGNOSTIC_INTERVAL, DEFAULT_SYNC_BATCH_SIZE
from pymyozen.exceptions import MyozenConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class ReconnectPolicy:
    """Exponential reconnect backoff settings.

    The delay before reconnect attempt ``n`` is
    ``min(base_delay_ms * 2**n, max_delay_ms)``.
    """

    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    max_attempts: int = 10


@dataclasses.dataclass(frozen=True)
class SimulatedDevice:
    """A device the simulated wireless scanner will "discover"."""

    id: str
    name: str


def _default_simulated_devices() -> tuple[SimulatedDevice, ...]:
    return (
        SimulatedDevice(id="myozen-device-001", name="MyoZen EMG Sensor 1"),
        SimulatedDevice(id="myozen-device-002", name="MyoZen EMG Sensor 2"),
    )


def _parse_simulated_devices(raw: str) -> tuple[SimulatedDevice, ...]:
    """Parse ``id[:name],id[:name]`` into a device roster."""
    devices: list[SimulatedDevice] = []
    for chunk in raw.split(","):
        entry = chunk.strip()
        if not entry:
            continue
        device_id, _, name = entry.partition(":")
        device_id = device_id.strip()
        devices.append(SimulatedDevice(id=device_id, name=name.strip() or device_id))
    return tuple(devices)


@dataclasses.dataclass(frozen=True)
class MyozenConfig:
    """Gateway configuration.

    Every value is supplied by the surrounding process at startup; the
    library never reads configuration on its own outside :meth:`from_env`.

    Parameters
    ----------
    broker_url : str or None
        MQTT broker URL (``mqtt://host:1883``, ``mqtts://host:8883``...).
        When unset the MQTT transport is disabled and reported as
        ``not_configured``.
    broker_username : str or None
        MQTT username.
    broker_password : str or None
        MQTT password.
    mqtt_client_id_prefix : str
        Prefix for the generated MQTT client id.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    connect_timeout : float
        Seconds a single connect attempt (broker or wireless handshake) may
        take before it counts as failed.
    reconnect : ReconnectPolicy
        Backoff base, ceiling and maximum attempts.
    wireless_enabled : bool
        Start the simulated wireless transport.
    wireless_scan_duration : float
        Bounded discovery window in seconds.
    wireless_connect_delay : float
        Simulated handshake latency in seconds.
    wireless_emit_interval : float
        Seconds between synthetic frames per connected device.
    simulated_devices : tuple of SimulatedDevice
        Devices the wireless scanner reports.
    sync_enabled : bool
        Start the periodic cloud sync.
    sync_interval_ms : int
        Period between scheduled sync runs.
    sync_batch_size : int
        Maximum unsynced records fetched per record kind per run.
    sync_push_timeout : float
        Upper bound in seconds for a single remote push.
    sync_push_latency : float
        Latency of the simulated remote push, used when
        ``remote_sync_url`` is unset.
    remote_sync_url : str or None
        Base URL of the remote store. Records are upserted with
        ``PUT {remote_sync_url}/sessions/{kind}/{id}``.
    ingest_workers : int
        Number of hash-partitioned ingestion workers.
    diagnostic_interval : float
        Minimum seconds between repeated drop diagnostics.
    shutdown_grace : float
        Seconds allowed for a graceful shutdown before remaining tasks are
        cancelled.
    """

    broker_url: str | None = None
    broker_username: str | None = None
    broker_password: str | None = None
    mqtt_client_id_prefix: str = "healthcare_backend"
    mqtt_keepalive: int = 60
    connect_timeout: float = 10.0
    reconnect: ReconnectPolicy = dataclasses.field(default_factory=ReconnectPolicy)
    wireless_enabled: bool = True
    wireless_scan_duration: float = 2.0
    wireless_connect_delay: float = 1.0
    wireless_emit_interval: float = 5.0
    simulated_devices: tuple[SimulatedDevice, ...] = dataclasses.field(default_factory=_default_simulated_devices)
    sync_enabled: bool = True
    sync_interval_ms: int = 300_000
    sync_batch_size: int = DEFAULT_SYNC_BATCH_SIZE
    sync_push_timeout: float = 10.0
    sync_push_latency: float = 0.2
    remote_sync_url: str | None = None
    ingest_workers: int = 4
    diagnostic_interval: float = DEFAULT_DIAGNOSTIC_INTERVAL
    shutdown_grace: float = 10.0

    def __post_init__(self) -> None:
        policy = self.reconnect
        if policy.base_delay_ms <= 0 or policy.max_delay_ms < policy.base_delay_ms:
            raise MyozenConfigError(
                f"invalid reconnect delays: base={policy.base_delay_ms} max={policy.max_delay_ms}"
            )
        if policy.max_attempts < 0:
            raise MyozenConfigError(f"max_attempts must be >= 0, got {policy.max_attempts}")
        if self.sync_batch_size <= 0:
            raise MyozenConfigError(f"sync_batch_size must be positive, got {self.sync_batch_size}")
        if self.sync_interval_ms <= 0:
            raise MyozenConfigError(f"sync_interval_ms must be positive, got {self.sync_interval_ms}")
        if self.ingest_workers <= 0:
            raise MyozenConfigError(f"ingest_workers must be positive, got {self.ingest_workers}")
        for name in ("connect_timeout", "sync_push_timeout", "wireless_scan_duration", "shutdown_grace"):
            if getattr(self, name) <= 0:
                raise MyozenConfigError(f"{name} must be positive")

    @property
    def mqtt_enabled(self) -> bool:
        """Whether a broker URL is configured."""
        return bool(self.broker_url and self.broker_url.strip())

    @classmethod
    def from_env(cls, **overrides: Any) -> MyozenConfig:
        """Create configuration from environment variables.

        Reads ``MYOZEN_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        MyozenConfig
            Populated configuration.
        """
        env = os.environ

        reconnect_kwargs: dict[str, int] = {}
        _ENV_RECONNECT_MAP = {
            "MYOZEN_RECONNECT_BASE_DELAY_MS": "base_delay_ms",
            "MYOZEN_RECONNECT_MAX_DELAY_MS": "max_delay_ms",
            "MYOZEN_RECONNECT_MAX_ATTEMPTS": "max_attempts",
        }
        for env_key, field_name in _ENV_RECONNECT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                reconnect_kwargs[field_name] = int(val)

        reconnect_overrides = overrides.pop("reconnect", None)
        if isinstance(reconnect_overrides, dict):
            reconnect_kwargs.update(reconnect_overrides)
        elif isinstance(reconnect_overrides, ReconnectPolicy):
            reconnect_kwargs = dataclasses.asdict(reconnect_overrides)

        config_kwargs: dict[str, Any] = {"reconnect": ReconnectPolicy(**reconnect_kwargs)}

        _ENV_STR_MAP = {
            "MYOZEN_BROKER_URL": "broker_url",
            "MYOZEN_MQTT_USERNAME": "broker_username",
            "MYOZEN_MQTT_PASSWORD": "broker_password",
            "MYOZEN_MQTT_CLIENT_ID_PREFIX": "mqtt_client_id_prefix",
            "MYOZEN_REMOTE_SYNC_URL": "remote_sync_url",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and val.strip():
                config_kwargs[field_name] = val.strip()

        _ENV_INT_MAP = {
            "MYOZEN_MQTT_KEEPALIVE": "mqtt_keepalive",
            "MYOZEN_SYNC_INTERVAL_MS": "sync_interval_ms",
            "MYOZEN_SYNC_BATCH_SIZE": "sync_batch_size",
            "MYOZEN_INGEST_WORKERS": "ingest_workers",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = int(val)

        _ENV_FLOAT_MAP = {
            "MYOZEN_CONNECT_TIMEOUT": "connect_timeout",
            "MYOZEN_WIRELESS_SCAN_DURATION": "wireless_scan_duration",
            "MYOZEN_WIRELESS_EMIT_INTERVAL": "wireless_emit_interval",
            "MYOZEN_SYNC_PUSH_TIMEOUT": "sync_push_timeout",
            "MYOZEN_SHUTDOWN_GRACE": "shutdown_grace",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = float(val)

        if "wireless_enabled" not in overrides:
            config_kwargs["wireless_enabled"] = _env_bool(env.get("MYOZEN_WIRELESS_ENABLED"), True)
        if "sync_enabled" not in overrides:
            config_kwargs["sync_enabled"] = _env_bool(env.get("MYOZEN_SYNC_ENABLED"), True)

        devices_env = env.get("MYOZEN_SIMULATED_DEVICES")
        if devices_env is not None and "simulated_devices" not in overrides:
            config_kwargs["simulated_devices"] = _parse_simulated_devices(devices_env)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
