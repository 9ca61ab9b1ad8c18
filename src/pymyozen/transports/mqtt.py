"""MQTT transport: threaded paho-mqtt client bridged onto an asyncio loop.

paho runs its network loop on its own thread; every callback hands its
result to the asyncio loop with ``call_soon_threadsafe``. paho's built-in
reconnect is disabled; :class:`ConnectionSupervisor` owns reconnection.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from pymyozen._constants import DATA_CHANNEL, STATUS_CHANNEL, TOPIC_ROOT
from pymyozen._redact import redact_for_log, redact_url
from pymyozen.config import MyozenConfig
from pymyozen.exceptions import MyozenConfigError, MyozenTransportError
from pymyozen.models.events import FrameSource
from pymyozen.transports.base import (
    FrameEvent,
    TransportEvent,
    connected_event,
    disconnected_event,
)

_logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {
    "mqtt": 1883,
    "tcp": 1883,
    "mqtts": 8883,
    "ssl": 8883,
    "ws": 80,
    "wss": 443,
}
_TLS_SCHEMES = frozenset({"mqtts", "ssl", "wss"})
_WEBSOCKET_SCHEMES = frozenset({"ws", "wss"})
_CHANNELS = frozenset({DATA_CHANNEL, STATUS_CHANNEL})


@dataclass(frozen=True)
class BrokerAddress:
    """Connection details parsed from a broker URL."""

    host: str
    port: int
    tls: bool = False
    websocket: bool = False
    path: str = "/mqtt"


def parse_broker_url(url: str) -> BrokerAddress:
    """Parse ``scheme://host[:port][/path]``; a bare ``host[:port]`` means ``mqtt://``."""
    value = url.strip()
    if not value:
        raise MyozenConfigError("Broker URL is empty")
    if "://" not in value:
        value = f"mqtt://{value}"
    parts = urlsplit(value)
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise MyozenConfigError(f"Unsupported broker URL scheme: {scheme}")
    if not parts.hostname:
        raise MyozenConfigError("Broker URL has no host")
    try:
        port = parts.port or _DEFAULT_PORTS[scheme]
    except ValueError as exc:
        raise MyozenConfigError(f"Invalid broker port in {redact_url(url)}") from exc
    return BrokerAddress(
        host=parts.hostname,
        port=port,
        tls=scheme in _TLS_SCHEMES,
        websocket=scheme in _WEBSOCKET_SCHEMES,
        path=parts.path or "/mqtt",
    )


def parse_device_topic(topic: str) -> tuple[str, str] | None:
    """Split ``devices/{device_id}/{channel}``; ``None`` for anything else."""
    parts = topic.split("/")
    if len(parts) != 3 or parts[0] != TOPIC_ROOT:
        return None
    _root, device_id, channel = parts
    if not device_id or channel not in _CHANNELS:
        return None
    return device_id, channel


def build_client_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(4)}"


class MqttTransport:
    """Broker connection yielding ``frame`` events for device topics."""

    def __init__(
        self,
        config: MyozenConfig,
        *,
        name: str = "mqtt",
        client_factory: Callable[..., mqtt.Client] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if not config.broker_url:
            raise MyozenConfigError("MQTT transport requires broker_url")
        self.name = name
        self._config = config
        self._address = parse_broker_url(config.broker_url)
        self._client_factory = client_factory or mqtt.Client
        self._logger = logger or _logger
        self._events: asyncio.Queue[TransportEvent] = asyncio.Queue()
        self._client: mqtt.Client | None = None
        self._connected = False

    @property
    def events(self) -> asyncio.Queue[TransportEvent]:
        return self._events

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def address(self) -> BrokerAddress:
        return self._address

    def _build_client(self) -> mqtt.Client:
        client = self._client_factory(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=build_client_id(self._config.mqtt_client_id_prefix),
            clean_session=True,
            protocol=mqtt.MQTTv311,
            transport="websockets" if self._address.websocket else "tcp",
            reconnect_on_failure=False,
        )
        client.enable_logger(self._logger)
        if self._config.broker_username:
            client.username_pw_set(self._config.broker_username, self._config.broker_password)
        if self._address.tls:
            client.tls_set()
        if self._address.websocket:
            client.ws_set_options(path=self._address.path)
        return client

    async def connect(self) -> None:
        """Connect to the broker; returns once the CONNACK is accepted."""
        await self.disconnect()
        loop = asyncio.get_running_loop()
        client = self._build_client()
        connack: asyncio.Future[None] = loop.create_future()

        def resolve(error: MyozenTransportError | None) -> None:
            if connack.done():
                return
            if error is None:
                connack.set_result(None)
            else:
                connack.set_exception(error)

        def on_connect(
            _client: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.is_failure:
                self._logger.warning("MQTT connect refused: %s", reason_code)
                error = MyozenTransportError(f"broker refused connection: {reason_code}", transport=self.name)
                loop.call_soon_threadsafe(resolve, error)
                return
            self._logger.debug("MQTT connected reason=%s", reason_code)
            loop.call_soon_threadsafe(resolve, None)

        def on_message(_client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                parsed = parse_device_topic(msg.topic)
                if parsed is None:
                    self._logger.debug("Ignoring message on unexpected topic=%s", msg.topic)
                    return
                device_id, channel = parsed
                self._logger.debug(
                    "Received PUBLISH topic=%s payload=%s",
                    msg.topic,
                    redact_for_log(bytes(msg.payload)),
                )
                frame = FrameEvent(
                    device_id=device_id,
                    channel=channel,
                    raw=bytes(msg.payload),
                    source=FrameSource.MQTT,
                )
                loop.call_soon_threadsafe(self._events.put_nowait, frame)
            except Exception:
                self._logger.debug("MQTT message handling failure", exc_info=True)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            self._logger.debug("MQTT disconnected: %s", reason_code)
            loop.call_soon_threadsafe(self._handle_disconnect, str(reason_code))
            error = MyozenTransportError(f"disconnected before CONNACK: {reason_code}", transport=self.name)
            loop.call_soon_threadsafe(resolve, error)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        self._client = client
        self._logger.info(
            "Connecting to MQTT broker %s:%s tls=%s",
            self._address.host,
            self._address.port,
            self._address.tls,
        )
        try:
            await loop.run_in_executor(
                None,
                functools.partial(
                    client.connect,
                    self._address.host,
                    self._address.port,
                    keepalive=self._config.mqtt_keepalive,
                ),
            )
            client.loop_start()
            await asyncio.wait_for(connack, self._config.connect_timeout)
        except (OSError, TimeoutError) as exc:
            await self.disconnect()
            raise MyozenTransportError(f"MQTT connect failed: {exc!r}", transport=self.name) from exc
        except (MyozenTransportError, asyncio.CancelledError):
            await self.disconnect()
            raise

        self._connected = True
        self._events.put_nowait(connected_event())

    def _handle_disconnect(self, reason: str) -> None:
        if not self._connected:
            return
        self._connected = False
        self._events.put_nowait(disconnected_event(reason))

    async def subscribe(self, target: str) -> None:
        client = self._require_client()
        result, _mid = client.subscribe(target, qos=1)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise MyozenTransportError(f"subscribe to {target} failed rc={result}", transport=self.name)
        self._logger.debug("MQTT subscribed topic=%s", target)

    async def send(self, target: str, payload: bytes | str) -> None:
        if not self._connected:
            raise MyozenTransportError("MQTT transport is not connected", transport=self.name)
        client = self._require_client()
        info = client.publish(target, payload, qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise MyozenTransportError(f"publish to {target} failed rc={info.rc}", transport=self.name)
        self._logger.debug("MQTT published topic=%s payload=%s", target, redact_for_log(payload))

    async def disconnect(self) -> None:
        """Stop and disconnect the current client if any."""
        client = self._client
        self._client = None
        was_connected = self._connected
        self._connected = False
        if client is None:
            return
        try:
            self._logger.debug("MQTT disconnect requested")
            client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
        if was_connected:
            self._events.put_nowait(disconnected_event("disconnect requested"))

    def _require_client(self) -> mqtt.Client:
        if self._client is None:
            raise MyozenTransportError("MQTT client not started", transport=self.name)
        return self._client
