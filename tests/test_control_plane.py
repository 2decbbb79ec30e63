from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from buoyfleet._api import control_plane
from buoyfleet._transport import HttpResponse, _decode_body
from buoyfleet.exceptions import FleetTransportError
from buoyfleet.models.control import ControlOutcome


class _RecordingTransport:
    def __init__(self, response: HttpResponse | Exception) -> None:
        self._response = response
        self.calls: list[tuple[str, str, Mapping[str, Any] | None, Mapping[str, Any] | None]] = []

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        json_body: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> HttpResponse:
        self.calls.append((method, endpoint, json_body, params))
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        (["10.8.0.53", "10.8.0.54"], ("10.8.0.53", "10.8.0.54")),
        ({"ips": ["10.8.0.53"]}, ("10.8.0.53",)),
        ({"found": ["10.8.0.54"]}, ("10.8.0.54",)),
        ({"ips": "10.8.0.53"}, ()),
        ({"other": []}, ()),
        ("10.8.0.53", ()),
        (None, ()),
        (["10.8.0.53", 7, None], ("10.8.0.53",)),
    ],
)
def test_parse_scan_candidates_accepts_all_shapes(data: Any, expected: tuple[str, ...]) -> None:
    assert control_plane.parse_scan_candidates(data) == expected


@pytest.mark.asyncio
async def test_add_device_posts_ip_and_port() -> None:
    transport = _RecordingTransport(HttpResponse(status=200, data={}))

    outcome = await control_plane.add_device(transport, "10.8.0.53", 14550)

    assert outcome == ControlOutcome(ok=True, status_code=200, data={})
    assert transport.calls == [("POST", "/aggiungiboa", {"ip": "10.8.0.53", "port": 14550}, None)]


@pytest.mark.asyncio
async def test_remove_device_uses_query_parameters() -> None:
    transport = _RecordingTransport(HttpResponse(status=204, data={}))

    outcome = await control_plane.remove_device(transport, "10.8.0.53", 14550)

    assert outcome.ok
    assert transport.calls == [("DELETE", "/rimuoviboa", None, {"ip": "10.8.0.53", "port": 14550})]


@pytest.mark.asyncio
async def test_non_2xx_is_returned_as_rejected_outcome() -> None:
    transport = _RecordingTransport(HttpResponse(status=409, data={"detail": "port in use"}))

    outcome = await control_plane.add_device(transport, "10.8.0.53", 14550)

    assert not outcome.ok
    assert outcome.status_code == 409
    assert outcome.error_message("Connection failed") == "port in use"


@pytest.mark.asyncio
async def test_transport_failure_is_returned_as_failed_outcome() -> None:
    transport = _RecordingTransport(FleetTransportError("Request to /scan failed: refused", endpoint="/scan"))

    outcome = await control_plane.fetch_scan(transport)

    assert not outcome.ok
    assert outcome.status_code is None
    assert outcome.error == "Request to /scan failed: refused"


@pytest.mark.asyncio
async def test_send_goto_omits_missing_or_zero_altitude() -> None:
    transport = _RecordingTransport(HttpResponse(status=200, data={}))

    await control_plane.send_goto(transport, "10.8.0.53", 14550, 45.8, 9.0)
    await control_plane.send_goto(transport, "10.8.0.53", 14550, 45.8, 9.0, alt=2.5)
    await control_plane.send_goto(transport, "10.8.0.53", 14550, 45.8, 9.0, alt=0.0)

    assert transport.calls[0][2] == {"ip": "10.8.0.53", "port": 14550, "lat": 45.8, "lon": 9.0}
    assert transport.calls[1][2] == {"ip": "10.8.0.53", "port": 14550, "lat": 45.8, "lon": 9.0, "alt": 2.5}
    assert "alt" not in transport.calls[2][2]
    assert transport.calls[0][:2] == ("POST", "/vaia")


@pytest.mark.asyncio
async def test_command_endpoints() -> None:
    transport = _RecordingTransport(HttpResponse(status=200, data={"isgoing": True}))

    await control_plane.stop_goto(transport, "10.8.0.53", 14550)
    await control_plane.change_state(transport, "10.8.0.53", 14550, "HOLD")
    outcome = await control_plane.fetch_is_going(transport, "10.8.0.53", 14550)

    assert [call[:2] for call in transport.calls] == [
        ("POST", "/stop_vaia"),
        ("POST", "/cambia_stato"),
        ("GET", "/isgoing/10.8.0.53/14550"),
    ]
    assert transport.calls[1][2] == {"ip": "10.8.0.53", "port": 14550, "stato": "HOLD"}
    assert outcome.data == {"isgoing": True}


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("", {}),
        ("   ", {}),
        ("<html>bad gateway</html>", {}),
        ('{"detail": "x"}', {"detail": "x"}),
        ('["10.8.0.53"]', ["10.8.0.53"]),
    ],
)
def test_decode_body(text: str, expected: Any) -> None:
    assert _decode_body(text) == expected


def test_error_message_fallbacks() -> None:
    assert ControlOutcome.rejected(500, {"message": "busy"}).error_message("x") == "busy"
    assert ControlOutcome.rejected(500, {"detail": "", "message": "busy"}).error_message("x") == "busy"
    assert ControlOutcome.rejected(500, {"detail": 12}).error_message("x") == "x"
    assert ControlOutcome.rejected(500, {}).error_message("x") == "x"
    assert ControlOutcome.failed("timeout").error_message("x") == "timeout"
