"""Control-plane endpoints.

Each function issues one request and resolves to a
:class:`~buoyfleet.models.control.ControlOutcome`; transport failures are
converted here so callers never see an exception.

| Method | Path | Used for |
|---|---|---|
| GET | ``/scan`` | discovery |
| POST | ``/aggiungiboa`` | connect |
| DELETE | ``/rimuoviboa?ip=&port=`` | remove |
| POST | ``/vaia`` | go-to command |
| POST | ``/stop_vaia`` | cancel go-to |
| POST | ``/cambia_stato`` | mode change |
| GET | ``/isgoing/{ip}/{port}`` | go-to status |
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

from buoyfleet._transport import Transport
from buoyfleet.exceptions import FleetTransportError
from buoyfleet.models.control import ControlOutcome

_logger = logging.getLogger(__name__)


async def _call(
    transport: Transport,
    method: str,
    endpoint: str,
    *,
    json_body: Mapping[str, Any] | None = None,
    params: Mapping[str, Any] | None = None,
) -> ControlOutcome:
    try:
        response = await transport.request(method, endpoint, json_body=json_body, params=params)
    except FleetTransportError as exc:
        _logger.debug("%s %s failed: %s", method, endpoint, exc)
        return ControlOutcome.failed(str(exc))
    if response.ok:
        return ControlOutcome.success(response.status, response.data)
    _logger.debug("%s %s rejected: HTTP %s body=%s", method, endpoint, response.status, response.data)
    return ControlOutcome.rejected(response.status, response.data)


def parse_scan_candidates(data: Any) -> tuple[str, ...]:
    """Extract discovered ips from a bare array, ``{"ips": [...]}`` or ``{"found": [...]}``."""
    found: Any = None
    if isinstance(data, list):
        found = data
    elif isinstance(data, dict):
        if isinstance(data.get("ips"), list):
            found = data["ips"]
        elif isinstance(data.get("found"), list):
            found = data["found"]
    if found is None:
        return ()
    return tuple(item for item in found if isinstance(item, str))


async def fetch_scan(transport: Transport) -> ControlOutcome:
    return await _call(transport, "GET", "/scan")


async def add_device(transport: Transport, ip: str, port: int) -> ControlOutcome:
    return await _call(transport, "POST", "/aggiungiboa", json_body={"ip": ip, "port": port})


async def remove_device(transport: Transport, ip: str, port: int) -> ControlOutcome:
    return await _call(transport, "DELETE", "/rimuoviboa", params={"ip": ip, "port": port})


async def send_goto(
    transport: Transport,
    ip: str,
    port: int,
    lat: float,
    lon: float,
    alt: float | None = None,
) -> ControlOutcome:
    body: dict[str, Any] = {"ip": ip, "port": port, "lat": lat, "lon": lon}
    if alt:
        body["alt"] = alt
    return await _call(transport, "POST", "/vaia", json_body=body)


async def stop_goto(transport: Transport, ip: str, port: int) -> ControlOutcome:
    return await _call(transport, "POST", "/stop_vaia", json_body={"ip": ip, "port": port})


async def change_state(transport: Transport, ip: str, port: int, state: Any) -> ControlOutcome:
    return await _call(transport, "POST", "/cambia_stato", json_body={"ip": ip, "port": port, "stato": state})


async def fetch_is_going(transport: Transport, ip: str, port: int) -> ControlOutcome:
    endpoint = f"/isgoing/{quote(ip, safe='')}/{port}"
    return await _call(transport, "GET", endpoint)
