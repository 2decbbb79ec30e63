"""Connection manager: discovery, connect/remove and disconnection bookkeeping.

The only component that talks to the control-plane REST surface. Every
remote call resolves to a :class:`~buoyfleet.models.control.ControlOutcome`;
failures end up as an empty scan result or in :attr:`connect_error`,
never as an exception.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from buoyfleet._api import control_plane as _cp
from buoyfleet._constants import (
    AUTO_RETRY_INTERVAL,
    DEFAULT_DEVICE_PORT,
    DISPLAY_TICK_INTERVAL,
    GENERIC_COMMAND_ERROR,
    GENERIC_CONNECT_ERROR,
)
from buoyfleet._transport import Transport
from buoyfleet.codec import device_id_for, ip_of_device, parse_device_id
from buoyfleet.models.control import ConnectionStatus, ControlOutcome
from buoyfleet.models.vehicle import Vehicle
from buoyfleet.registry import DeviceRegistry

_logger = logging.getLogger(__name__)

TickListener = Callable[[int], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def format_duration(ms: float) -> str:
    """Render an elapsed time as ``"1h 2m 3s"``, ``"2m 3s"`` or ``"3s"``."""
    seconds = max(0, int(ms // 1000))
    minutes, secs = divmod(seconds, 60)
    hours, mins = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {mins}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class ConnectionManager:
    """Drive the scan/connect/remove workflow for one dashboard session.

    Parameters
    ----------
    registry : DeviceRegistry
        Registry mutated on successful connects and on removals.
    transport : Transport
        Control-plane transport.
    vehicles : callable
        Returns the current projected vehicle list; read on every scan to
        exclude ips that are already connected.
    clock : callable
        Epoch-millisecond clock.
    """

    def __init__(
        self,
        *,
        registry: DeviceRegistry,
        transport: Transport,
        vehicles: Callable[[], Sequence[Vehicle]],
        clock: Callable[[], int] = _now_ms,
        device_port: int = DEFAULT_DEVICE_PORT,
        auto_retry_interval: float = AUTO_RETRY_INTERVAL,
        tick_interval: float = DISPLAY_TICK_INTERVAL,
    ) -> None:
        self._registry = registry
        self._transport = transport
        self._vehicles = vehicles
        self._clock = clock
        self._device_port = device_port
        self._auto_retry_interval = auto_retry_interval
        self._tick_interval = tick_interval

        self._scanned: tuple[str, ...] = ()
        self._scans_in_flight = 0
        self._connecting: dict[str, asyncio.Future[ControlOutcome]] = {}
        self._connect_error: str | None = None
        self._auto_retry = False
        self._auto_retry_task: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._tick_listeners: list[TickListener] = []

        self._disconnected_since: dict[str, int] = {}
        self._online_signature: tuple[tuple[str, bool], ...] | None = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def scanned_ips(self) -> tuple[str, ...]:
        """Discovered candidates, minus ips that are connected right now."""
        connected = self._connected_ips()
        return tuple(ip for ip in self._scanned if ip not in connected)

    @property
    def scanning(self) -> bool:
        return self._scans_in_flight > 0

    @property
    def connecting_ips(self) -> frozenset[str]:
        return frozenset(self._connecting)

    @property
    def connect_error(self) -> str | None:
        return self._connect_error

    @property
    def auto_retry(self) -> bool:
        return self._auto_retry

    @property
    def disconnected_since(self) -> dict[str, int]:
        return dict(self._disconnected_since)

    @property
    def online_count(self) -> int:
        return sum(1 for vehicle in self._vehicles() if vehicle.isonline)

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            scanned_ips=self.scanned_ips,
            scanning=self.scanning,
            connecting_ips=self.connecting_ips,
            connect_error=self._connect_error,
            auto_retry=self._auto_retry,
            disconnected_since=self.disconnected_since,
            online_count=self.online_count,
        )

    def _connected_ips(self) -> frozenset[str]:
        return frozenset(ip_of_device(vehicle.id) for vehicle in self._vehicles())

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    async def scan(self) -> tuple[str, ...]:
        """Discover candidate ips; any failure yields an empty list."""
        self._scans_in_flight += 1
        try:
            outcome = await _cp.fetch_scan(self._transport)
            if outcome.ok:
                found = _cp.parse_scan_candidates(outcome.data)
            else:
                _logger.debug("Scan failed status=%s error=%s", outcome.status_code, outcome.error)
                found = ()
            # Exclusion is computed after the await so it reflects the current fleet.
            connected = self._connected_ips()
            self._scanned = tuple(ip for ip in found if ip not in connected)
        finally:
            self._scans_in_flight -= 1
        _logger.debug("Scan found candidates=%s", self._scanned)
        return self._scanned

    def set_auto_retry(self, enabled: bool) -> None:
        """Start or stop scanning every ``auto_retry_interval`` seconds."""
        if enabled == self._auto_retry:
            return
        self._auto_retry = enabled
        if enabled:
            self._auto_retry_task = asyncio.get_running_loop().create_task(self._auto_retry_loop())
            return
        task = self._auto_retry_task
        self._auto_retry_task = None
        if task is not None:
            task.cancel()

    async def _auto_retry_loop(self) -> None:
        while True:
            await asyncio.sleep(self._auto_retry_interval)
            # Stopping auto-retry abandons the wait, not the request: a
            # scan already sent still lands.
            scan = asyncio.ensure_future(self.scan())
            self._track(scan)
            await asyncio.shield(scan)

    # ------------------------------------------------------------------
    # Connect / remove
    # ------------------------------------------------------------------

    async def connect(self, ip: str) -> ControlOutcome:
        """Attach the buoy at *ip* and register it on success.

        A second call for an ip that is already in flight joins the
        pending attempt instead of sending another request.
        """
        pending = self._connecting.get(ip)
        if pending is not None:
            _logger.debug("Connect already in flight ip=%s, joining", ip)
            return await asyncio.shield(pending)

        future: asyncio.Future[ControlOutcome] = asyncio.get_running_loop().create_future()
        self._connecting[ip] = future
        try:
            outcome = await self._connect(ip)
        except asyncio.CancelledError:
            future.cancel()
            raise
        else:
            future.set_result(outcome)
            return outcome
        finally:
            self._connecting.pop(ip, None)

    async def _connect(self, ip: str) -> ControlOutcome:
        self._connect_error = None
        port = self._device_port
        outcome = await _cp.add_device(self._transport, ip, port)
        if not outcome.ok:
            self._connect_error = outcome.error_message(GENERIC_CONNECT_ERROR)
            _logger.info("Connect to %s rejected: %s", ip, self._connect_error)
            return outcome

        device_id = device_id_for(ip, port)
        self._registry.add(device_id)
        self._scanned = tuple(item for item in self._scanned if item != ip)
        _logger.info("Connected %s as %s", ip, device_id)
        return outcome

    async def remove(self, ip: str, port: int) -> ControlOutcome:
        """Detach a buoy; it leaves the registry whether or not the backend agrees."""
        device_id = device_id_for(ip, port)
        try:
            outcome = await _cp.remove_device(self._transport, ip, port)
        finally:
            self._registry.remove(device_id)
            self._disconnected_since.pop(device_id, None)
        if not outcome.ok:
            _logger.warning(
                "Removal of %s not confirmed by control plane: %s",
                device_id,
                outcome.error_message(f"HTTP {outcome.status_code}"),
            )
        return outcome

    def clear_connect_error(self) -> None:
        self._connect_error = None

    # ------------------------------------------------------------------
    # Disconnection tracking
    # ------------------------------------------------------------------

    def track_disconnections(self, vehicles: Sequence[Vehicle], now: int | None = None) -> bool:
        """Update :attr:`disconnected_since` from the vehicle list.

        Only runs when the ``(id, isonline)`` pairs changed since the last
        call; returns whether it ran.
        """
        signature = tuple((vehicle.id, vehicle.isonline) for vehicle in vehicles)
        if signature == self._online_signature:
            return False
        self._online_signature = signature

        stamp = self._clock() if now is None else now
        for device_id, online in signature:
            if online:
                self._disconnected_since.pop(device_id, None)
            elif device_id not in self._disconnected_since:
                self._disconnected_since[device_id] = stamp
        return True

    def disconnected_for(self, device_id: str, now: int | None = None) -> float | None:
        """Seconds since *device_id* was first seen offline, or ``None`` when online."""
        since = self._disconnected_since.get(device_id)
        if since is None:
            return None
        current = self._clock() if now is None else now
        return max(0.0, (current - since) / 1000.0)

    def on_tick(self, listener: TickListener) -> Callable[[], None]:
        """Call *listener* with the current epoch ms on every display tick."""
        self._tick_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._tick_listeners:
                self._tick_listeners.remove(listener)

        return _unsubscribe

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            now = self._clock()
            self.track_disconnections(self._vehicles(), now)
            for listener in list(self._tick_listeners):
                try:
                    listener(now)
                except Exception:
                    _logger.exception("Tick listener failed")

    # ------------------------------------------------------------------
    # Command pass-through
    # ------------------------------------------------------------------

    def _endpoint(self, device_id: str) -> tuple[str, int] | None:
        endpoint = parse_device_id(device_id)
        if endpoint is None:
            _logger.debug("Command for unparseable device id=%s", device_id)
        return endpoint

    async def send_goto(self, device_id: str, lat: float, lon: float, alt: float | None = None) -> ControlOutcome:
        endpoint = self._endpoint(device_id)
        if endpoint is None:
            return ControlOutcome.failed(f"Invalid device id: {device_id}")
        return await _cp.send_goto(self._transport, endpoint[0], endpoint[1], lat, lon, alt)

    async def stop_goto(self, device_id: str) -> ControlOutcome:
        endpoint = self._endpoint(device_id)
        if endpoint is None:
            return ControlOutcome.failed(f"Invalid device id: {device_id}")
        return await _cp.stop_goto(self._transport, endpoint[0], endpoint[1])

    async def set_mode(self, device_id: str, state: Any) -> ControlOutcome:
        endpoint = self._endpoint(device_id)
        if endpoint is None:
            return ControlOutcome.failed(f"Invalid device id: {device_id}")
        return await _cp.change_state(self._transport, endpoint[0], endpoint[1], state)

    async def is_going(self, device_id: str) -> bool:
        """Whether a go-to command is active; any failure reads as ``False``."""
        endpoint = self._endpoint(device_id)
        if endpoint is None:
            return False
        outcome = await _cp.fetch_is_going(self._transport, endpoint[0], endpoint[1])
        if not outcome.ok:
            _logger.debug("isgoing check failed for %s: %s", device_id, outcome.error_message(GENERIC_COMMAND_ERROR))
            return False
        return isinstance(outcome.data, dict) and outcome.data.get("isgoing") is True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def start(self) -> None:
        """Start the 1 Hz display tick (also catches vehicle list changes not pushed to us)."""
        if self._tick_task is None:
            self._tick_task = asyncio.get_running_loop().create_task(self._tick_loop())

    async def stop(self) -> None:
        """Cancel the tick, auto-retry and any scan still in flight."""
        self._auto_retry = False
        tasks = [task for task in (self._tick_task, self._auto_retry_task) if task is not None]
        tasks.extend(self._background)
        self._tick_task = None
        self._auto_retry_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
