"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# MQTT topic layout
# ------------------------------------------------------------------

TOPIC_ROOT = "devices"
DATA_CHANNEL = "data"
STATUS_CHANNEL = "status"
COMMAND_CHANNEL = "command"

DATA_TOPIC_FILTER = f"{TOPIC_ROOT}/+/{DATA_CHANNEL}"
STATUS_TOPIC_FILTER = f"{TOPIC_ROOT}/+/{STATUS_CHANNEL}"


def device_topic(device_id: str, channel: str) -> str:
    """Build ``devices/{device_id}/{channel}``."""
    return f"{TOPIC_ROOT}/{device_id}/{channel}"


# ------------------------------------------------------------------
# Wireless binary frame layout (little-endian)
#   [0]      kind (1=EMG, 2=EMS)
#   [1:5]    uint32 session id
#   [5:13]   uint64 timestamp, epoch milliseconds
#   [13:]    EMG: int16 samples / EMS: 3 parameter bytes + response blob
# ------------------------------------------------------------------

FRAME_HEADER_FORMAT = "<BIQ"
FRAME_HEADER_SIZE = 13
EMG_SAMPLE_SIZE = 2
EMS_PARAMETER_SIZE = 3

# Status frame: battery byte + four firmware version bytes.
STATUS_FRAME_SIZE = 5

# ------------------------------------------------------------------
# Runtime defaults
# ------------------------------------------------------------------

DEFAULT_SYNC_BATCH_SIZE = 100
DEFAULT_DIAGNOSTIC_INTERVAL = 5.0
WIRELESS_DEVICE_TYPE = "myozen"
