from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from buoyfleet._transport import HttpTransport
from buoyfleet.exceptions import FleetTransportError
from buoyfleet.manager import ConnectionManager
from buoyfleet.registry import DeviceRegistry, MemoryStorage


async def _scan(_request: web.Request) -> web.Response:
    return web.json_response(["10.8.0.53"])


async def _connect(request: web.Request) -> web.Response:
    body = await request.json()
    if body != {"ip": "10.8.0.53", "port": 14550}:
        return web.json_response({"detail": f"unexpected body {body}"}, status=400)
    return web.json_response({"detail": "port in use"}, status=409)


async def _remove(request: web.Request) -> web.Response:
    if dict(request.query) != {"ip": "10.8.0.53", "port": "14550"}:
        return web.Response(status=400)
    return web.Response(status=204)


async def _garbled(_request: web.Request) -> web.Response:
    return web.Response(body=b'["10.8.0.5\xff"]', content_type="application/json")


@contextlib.asynccontextmanager
async def _control_plane(*, garbled_scan: bool = False) -> AsyncIterator[str]:
    app = web.Application()
    app.router.add_get("/scan", _garbled if garbled_scan else _scan)
    app.router.add_post("/aggiungiboa", _connect)
    app.router.add_delete("/rimuoviboa", _remove)
    app.router.add_get("/garbled", _garbled)
    server = TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("/"))
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_success_and_rejection_are_returned() -> None:
    async with _control_plane() as base_url, aiohttp.ClientSession() as http:
        transport = HttpTransport(base_url, http)

        scan = await transport.request("GET", "/scan")
        rejected = await transport.request("POST", "/aggiungiboa", json_body={"ip": "10.8.0.53", "port": 14550})

    assert scan.ok
    assert scan.data == ["10.8.0.53"]
    assert not rejected.ok
    assert rejected.status == 409
    assert rejected.data == {"detail": "port in use"}


@pytest.mark.asyncio
async def test_empty_body_decodes_to_empty_dict() -> None:
    async with _control_plane() as base_url, aiohttp.ClientSession() as http:
        response = await HttpTransport(base_url, http).request(
            "DELETE",
            "/rimuoviboa",
            params={"ip": "10.8.0.53", "port": 14550},
        )

    assert response.status == 204
    assert response.data == {}


@pytest.mark.asyncio
async def test_invalid_utf8_body_is_decoded_with_replacement() -> None:
    async with _control_plane() as base_url, aiohttp.ClientSession() as http:
        response = await HttpTransport(base_url, http).request("GET", "/garbled")

    assert response.ok
    assert response.data == ["10.8.0.5�"]


@pytest.mark.asyncio
async def test_unreachable_control_plane_raises_transport_error() -> None:
    async with _control_plane() as base_url:
        pass

    async with aiohttp.ClientSession() as http:
        with pytest.raises(FleetTransportError):
            await HttpTransport(base_url, http, timeout=2.0).request("GET", "/scan")


@pytest.mark.asyncio
async def test_scan_survives_invalid_utf8_body() -> None:
    async with _control_plane(garbled_scan=True) as base_url, aiohttp.ClientSession() as http:
        manager = ConnectionManager(
            registry=DeviceRegistry.open(MemoryStorage()),
            transport=HttpTransport(base_url, http),
            vehicles=tuple,
        )

        found = await manager.scan()

    assert found == ("10.8.0.5�",)
    assert manager.scanning is False
