"""Typed views of the MAVLink message kinds the dashboard reads.

Buoys publish each MAVLink message as a JSON object with the message's
own snake_case field names. Every field is optional: firmware varies and
the models only need to tolerate, not validate, what arrives.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from buoyfleet.models._normalize import safe_float, safe_int


class MavlinkPayload(BaseModel):
    """Base for typed telemetry payloads."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )


class GlobalPositionInt(MavlinkPayload):
    """``GLOBAL_POSITION_INT``: fused position estimate.

    ``lat``/``lon`` are degrees * 1e7, ``alt``/``relative_alt`` millimetres,
    ``hdg`` centidegrees. ``speed``/``heading`` are extras some bridges add.
    """

    time_boot_ms: int | None = None
    lat: float | None = None
    lon: float | None = None
    alt: float | None = None
    relative_alt: float | None = None
    vx: float | None = None
    vy: float | None = None
    vz: float | None = None
    hdg: float | None = None
    speed: float | None = None
    heading: float | None = None

    @field_validator("lat", "lon", "alt", "relative_alt", "vx", "vy", "vz", "hdg", "speed", "heading", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("time_boot_ms", mode="before")
    @classmethod
    def _coerce_ints(cls, value: Any) -> int | None:
        return safe_int(value)


class SysStatus(MavlinkPayload):
    """``SYS_STATUS``: battery and link health."""

    voltage_battery: float | None = None
    """Battery voltage in millivolts."""
    current_battery: float | None = None
    """Battery current in centiamps (``-1`` when not measured)."""
    battery_remaining: float | None = None
    """Remaining battery in percent (``-1`` when not estimated)."""
    drop_rate_comm: float | None = None
    errors_comm: int | None = None

    @field_validator("voltage_battery", "current_battery", "battery_remaining", "drop_rate_comm", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("errors_comm", mode="before")
    @classmethod
    def _coerce_ints(cls, value: Any) -> int | None:
        return safe_int(value)


class Attitude(MavlinkPayload):
    """``ATTITUDE``: orientation in radians, rates in rad/s."""

    time_boot_ms: int | None = None
    roll: float | None = None
    pitch: float | None = None
    yaw: float | None = None
    rollspeed: float | None = None
    pitchspeed: float | None = None
    yawspeed: float | None = None

    @field_validator("roll", "pitch", "yaw", "rollspeed", "pitchspeed", "yawspeed", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("time_boot_ms", mode="before")
    @classmethod
    def _coerce_ints(cls, value: Any) -> int | None:
        return safe_int(value)


class GpsRawInt(MavlinkPayload):
    """``GPS_RAW_INT``: raw receiver fix."""

    time_usec: int | None = None
    fix_type: int | None = None
    lat: float | None = None
    lon: float | None = None
    alt: float | None = None
    eph: float | None = None
    epv: float | None = None
    vel: float | None = None
    cog: float | None = None
    satellites_visible: int | None = None

    @field_validator("lat", "lon", "alt", "eph", "epv", "vel", "cog", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("time_usec", "fix_type", "satellites_visible", mode="before")
    @classmethod
    def _coerce_ints(cls, value: Any) -> int | None:
        return safe_int(value)


class VfrHud(MavlinkPayload):
    """``VFR_HUD``: speeds in m/s, heading in degrees."""

    airspeed: float | None = None
    groundspeed: float | None = None
    heading: float | None = None
    throttle: float | None = None
    alt: float | None = None
    climb: float | None = None

    @field_validator("airspeed", "groundspeed", "heading", "throttle", "alt", "climb", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)


class Heartbeat(MavlinkPayload):
    """``HEARTBEAT``: autopilot type and current mode."""

    type: int | None = None
    autopilot: int | None = None
    base_mode: int | None = None
    custom_mode: int | None = None
    system_status: int | None = None
    mavlink_version: int | None = None

    @field_validator("type", "autopilot", "base_mode", "custom_mode", "system_status", "mavlink_version", mode="before")
    @classmethod
    def _coerce_ints(cls, value: Any) -> int | None:
        return safe_int(value)


KNOWN_KINDS: dict[str, type[MavlinkPayload]] = {
    "GLOBAL_POSITION_INT": GlobalPositionInt,
    "SYS_STATUS": SysStatus,
    "ATTITUDE": Attitude,
    "GPS_RAW_INT": GpsRawInt,
    "VFR_HUD": VfrHud,
    "HEARTBEAT": Heartbeat,
}


def parse_known_kind(kind: str, data: Any) -> MavlinkPayload | None:
    """Parse *data* into the typed model for *kind*.

    Returns ``None`` for unknown kinds and for payloads that are not JSON
    objects (e.g. the ``{"raw": ...}`` fallback still parses, to an empty model).
    """
    model_cls = KNOWN_KINDS.get(kind)
    if model_cls is None or not isinstance(data, dict):
        return None
    try:
        return model_cls.model_validate(data)
    except ValidationError:
        return None
