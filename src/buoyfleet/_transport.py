"""HTTP transport for the control-plane REST surface."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp

from buoyfleet.exceptions import FleetTransportError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpResponse:
    """Status code and decoded body of one control-plane response."""

    status: int
    data: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        json_body: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> HttpResponse: ...


def _decode_body(text: str) -> Any:
    """JSON-decode a response body; empty or non-JSON bodies decode to ``{}``."""
    if not text.strip():
        return {}
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return {}


class HttpTransport:
    """aiohttp-backed transport bound to one control-plane base URL.

    Raises :class:`FleetTransportError` only when no response was
    received (network failure, timeout). Non-2xx responses are returned.
    """

    def __init__(
        self,
        base_url: str,
        http_session: aiohttp.ClientSession,
        *,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        json_body: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> HttpResponse:
        url = f"{self._base_url}{endpoint}"
        query = {key: str(value) for key, value in params.items()} if params else None

        _logger.debug("%s %s params=%s body=%s", method, url, query, json_body)

        try:
            async with self._http.request(
                method,
                url,
                json=dict(json_body) if json_body is not None else None,
                params=query,
                timeout=self._timeout,
            ) as resp:
                body = await resp.read()
                status = resp.status
        except aiohttp.ClientError as exc:
            raise FleetTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc
        except TimeoutError as exc:
            raise FleetTransportError(
                f"Request to {endpoint} timed out",
                endpoint=endpoint,
            ) from exc

        _logger.debug("%s %s -> HTTP %s", method, url, status)
        return HttpResponse(status=status, data=_decode_body(body.decode("utf-8", errors="replace")))
