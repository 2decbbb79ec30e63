"""Internal constants shared across the library."""

BASE_URL = "http://localhost:8001"

# ------------------------------------------------------------------
# Pub/sub layout: mavlink/{deviceId}/json/{kind}
# ------------------------------------------------------------------

TELEMETRY_TOPIC = "mavlink/+/json/#"
TOPIC_DEVICE_SEGMENT = 1
TOPIC_KIND_SEGMENT = 3

POSITION_KIND = "GLOBAL_POSITION_INT"
ONLINE_KIND = "isonline"

#: Position fields are transmitted as degrees * 1e7.
COORDINATE_SCALE = 1e7

# ------------------------------------------------------------------
# Broker session timings (seconds)
# ------------------------------------------------------------------

MQTT_RECONNECT_INTERVAL = 2.0
MQTT_CONNECT_TIMEOUT = 10.0
MQTT_KEEPALIVE = 60

# ------------------------------------------------------------------
# Device lifecycle
# ------------------------------------------------------------------

#: Every buoy is attached on the same MAVLink port.
DEFAULT_DEVICE_PORT = 14550
REGISTRY_KEY = "userBoas"
AUTO_RETRY_INTERVAL = 5.0
DISPLAY_TICK_INTERVAL = 1.0

GENERIC_CONNECT_ERROR = "Connection failed"
GENERIC_COMMAND_ERROR = "Command failed"
