"""Vehicle projection.

Derives display-ready :class:`~buoyfleet.models.vehicle.Vehicle` objects
from the telemetry store and the device registry. :func:`project` is pure;
:class:`VehicleProjector` memoizes it on the revisions of its two inputs.
"""

from __future__ import annotations

import math
from collections.abc import Container, Mapping
from typing import Any, Protocol

from buoyfleet._constants import COORDINATE_SCALE, ONLINE_KIND, POSITION_KIND
from buoyfleet.models._normalize import is_number
from buoyfleet.models.mavlink import KNOWN_KINDS, parse_known_kind
from buoyfleet.models.telemetry import TelemetryMessage
from buoyfleet.models.vehicle import Vehicle
from buoyfleet.state.store import TelemetryState


class _RegistryLike(Protocol):
    @property
    def revision(self) -> int: ...

    def __contains__(self, device_id: object) -> bool: ...


class _StoreLike(Protocol):
    @property
    def revision(self) -> int: ...

    def snapshot(self) -> TelemetryState: ...


def _has_coordinates(data: Any) -> bool:
    return isinstance(data, dict) and is_number(data.get("lat")) and is_number(data.get("lon"))


def _position_payload(kinds: Mapping[str, TelemetryMessage]) -> Any:
    """Pick the position-bearing payload.

    ``GLOBAL_POSITION_INT`` wins whenever present, even if unusable;
    otherwise the first kind exposing numeric ``lat``/``lon``.
    """
    preferred = kinds.get(POSITION_KIND)
    if preferred is not None:
        return preferred.data
    for message in kinds.values():
        if _has_coordinates(message.data):
            return message.data
    return None


def _decode_coordinates(data: Any) -> tuple[float, float] | None:
    if not _has_coordinates(data):
        return None
    try:
        lat = data["lat"] / COORDINATE_SCALE
        lon = data["lon"] / COORDINATE_SCALE
    except OverflowError:
        # JSON integers are unbounded; anything past float range is unusable.
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    return lat, lon


def _project_device(device_id: str, kinds: Mapping[str, TelemetryMessage]) -> Vehicle | None:
    coordinates = _decode_coordinates(_position_payload(kinds))
    if coordinates is None:
        return None
    lat, lon = coordinates

    online = kinds.get(ONLINE_KIND)
    isonline = online is not None and online.data is True

    telemetry = {kind: message.data for kind, message in kinds.items() if kind != ONLINE_KIND}
    typed = {kind: parse_known_kind(kind, data) for kind, data in telemetry.items() if kind in KNOWN_KINDS}

    return Vehicle(
        id=device_id,
        lat=lat,
        lon=lon,
        isonline=isonline,
        telemetry=telemetry,
        **typed,
    )


def project(state: TelemetryState, registry: Container[str]) -> tuple[Vehicle, ...]:
    """Project registered devices with a valid position, in store order."""
    vehicles: list[Vehicle] = []
    for device_id, kinds in state.items():
        if device_id not in registry:
            continue
        vehicle = _project_device(device_id, kinds)
        if vehicle is not None:
            vehicles.append(vehicle)
    return tuple(vehicles)


class VehicleProjector:
    """Memoized :func:`project` over a live store and registry.

    The returned tuple is replaced, never mutated, when either input changes.
    """

    def __init__(self, store: _StoreLike, registry: _RegistryLike) -> None:
        self._store = store
        self._registry = registry
        self._key: tuple[int, int] | None = None
        self._vehicles: tuple[Vehicle, ...] = ()

    def vehicles(self) -> tuple[Vehicle, ...]:
        key = (self._store.revision, self._registry.revision)
        if key != self._key:
            self._vehicles = project(self._store.snapshot(), self._registry)
            self._key = key
        return self._vehicles
