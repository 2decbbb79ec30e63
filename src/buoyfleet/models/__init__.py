"""Data models for buoy telemetry and the connection workflow."""

from buoyfleet.models.control import ConnectionStatus, ControlOutcome
from buoyfleet.models.mavlink import (
    KNOWN_KINDS,
    Attitude,
    GlobalPositionInt,
    GpsRawInt,
    Heartbeat,
    MavlinkPayload,
    SysStatus,
    VfrHud,
    parse_known_kind,
)
from buoyfleet.models.telemetry import TelemetryMessage
from buoyfleet.models.vehicle import Vehicle

__all__ = [
    "KNOWN_KINDS",
    "Attitude",
    "ConnectionStatus",
    "ControlOutcome",
    "GlobalPositionInt",
    "GpsRawInt",
    "Heartbeat",
    "MavlinkPayload",
    "SysStatus",
    "TelemetryMessage",
    "Vehicle",
    "VfrHud",
    "parse_known_kind",
]
