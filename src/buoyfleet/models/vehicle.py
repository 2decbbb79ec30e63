"""Vehicle model: the projected, display-ready view of one buoy."""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from buoyfleet.codec import parse_device_id
from buoyfleet.models.mavlink import Attitude, GlobalPositionInt, GpsRawInt, Heartbeat, SysStatus, VfrHud


class Vehicle(BaseModel):
    """A registered buoy with a valid position fix.

    Known message kinds are exposed as typed fields; every kind's payload
    (known or not) is also available by name through :attr:`telemetry`
    and item access, e.g. ``vehicle["SYS_STATUS"]``.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    id: str
    """Device id, e.g. ``"10_8_0_53_14550"``."""
    lat: float
    """Latitude in decimal degrees."""
    lon: float
    """Longitude in decimal degrees."""
    isonline: bool = False
    """``True`` only when the ``isonline`` kind's payload is exactly ``true``."""

    global_position_int: GlobalPositionInt | None = Field(default=None, alias="GLOBAL_POSITION_INT")
    sys_status: SysStatus | None = Field(default=None, alias="SYS_STATUS")
    attitude: Attitude | None = Field(default=None, alias="ATTITUDE")
    gps_raw_int: GpsRawInt | None = Field(default=None, alias="GPS_RAW_INT")
    vfr_hud: VfrHud | None = Field(default=None, alias="VFR_HUD")
    heartbeat: Heartbeat | None = Field(default=None, alias="HEARTBEAT")

    telemetry: dict[str, Any] = Field(default_factory=dict)
    """Latest payload of every message kind, keyed by kind name."""

    def __getitem__(self, kind: str) -> Any:
        return self.telemetry[kind]

    def payload(self, kind: str, default: Any = None) -> Any:
        """Latest payload for *kind*, or *default*."""
        return self.telemetry.get(kind, default)

    @property
    def ip(self) -> str | None:
        endpoint = parse_device_id(self.id)
        return endpoint[0] if endpoint else None

    @property
    def port(self) -> int | None:
        endpoint = parse_device_id(self.id)
        return endpoint[1] if endpoint else None

    @property
    def speed(self) -> float | None:
        """Speed in m/s: bridge-provided position speed, else VFR groundspeed."""
        if self.global_position_int is not None and self.global_position_int.speed is not None:
            return self.global_position_int.speed
        return self.vfr_hud.groundspeed if self.vfr_hud is not None else None

    @property
    def heading(self) -> float | None:
        if self.global_position_int is None:
            return None
        if self.global_position_int.heading is not None:
            return self.global_position_int.heading
        return self.global_position_int.hdg

    @property
    def mode(self) -> int | None:
        return self.heartbeat.custom_mode if self.heartbeat is not None else None

    @property
    def battery_voltage(self) -> float | None:
        return self.sys_status.voltage_battery if self.sys_status is not None else None

    @property
    def battery_remaining(self) -> float | None:
        return self.sys_status.battery_remaining if self.sys_status is not None else None

    @property
    def pitch_deg(self) -> float | None:
        if self.attitude is None or self.attitude.pitch is None:
            return None
        return math.degrees(self.attitude.pitch)

    @property
    def roll_deg(self) -> float | None:
        if self.attitude is None or self.attitude.roll is None:
            return None
        return math.degrees(self.attitude.roll)

    @property
    def satellites_visible(self) -> int | None:
        return self.gps_raw_int.satellites_visible if self.gps_raw_int is not None else None
