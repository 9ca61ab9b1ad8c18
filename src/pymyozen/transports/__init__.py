"""Device transports: MQTT broker and simulated wireless links."""

from pymyozen.transports.base import FrameEvent, Transport, TransportEvent, TransportEventKind
from pymyozen.transports.mqtt import MqttTransport, parse_broker_url, parse_device_topic
from pymyozen.transports.wireless import SimulatedWirelessLink, SimulatedWirelessScanner

__all__ = [
    "FrameEvent",
    "MqttTransport",
    "SimulatedWirelessLink",
    "SimulatedWirelessScanner",
    "Transport",
    "TransportEvent",
    "TransportEventKind",
    "parse_broker_url",
    "parse_device_topic",
]
