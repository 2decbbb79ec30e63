"""buoyfleet - Async telemetry ingestion and device lifecycle for marker buoy fleets."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("buoyfleet")
except PackageNotFoundError:
    __version__ = "0+local"
from buoyfleet._mqtt import BrokerSession, BrokerSettings, BrokerState, parse_broker_url
from buoyfleet.codec import decode_payload, decode_topic, device_id_for, parse_device_id
from buoyfleet.config import FleetConfig
from buoyfleet.exceptions import FleetBrokerError, FleetConfigError, FleetError, FleetTransportError
from buoyfleet.fleet import FleetSession
from buoyfleet.manager import ConnectionManager, format_duration
from buoyfleet.models import ConnectionStatus, ControlOutcome, TelemetryMessage, Vehicle
from buoyfleet.registry import DeviceRegistry, JsonFileStorage, MemoryStorage
from buoyfleet.state.projector import VehicleProjector, project
from buoyfleet.state.store import TelemetryStore

__all__ = [
    "BrokerSession",
    "BrokerSettings",
    "BrokerState",
    "ConnectionManager",
    "ConnectionStatus",
    "ControlOutcome",
    "DeviceRegistry",
    "FleetBrokerError",
    "FleetConfig",
    "FleetConfigError",
    "FleetError",
    "FleetSession",
    "FleetTransportError",
    "JsonFileStorage",
    "MemoryStorage",
    "TelemetryMessage",
    "TelemetryStore",
    "Vehicle",
    "VehicleProjector",
    "__version__",
    "decode_payload",
    "decode_topic",
    "device_id_for",
    "format_duration",
    "parse_device_id",
    "project",
]
