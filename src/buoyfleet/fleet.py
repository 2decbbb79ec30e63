"""Fleet session: the single owner of every stateful component."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from buoyfleet._mqtt import BrokerSession, BrokerSettings, parse_broker_url
from buoyfleet._transport import HttpTransport, Transport
from buoyfleet.config import FleetConfig
from buoyfleet.exceptions import FleetConfigError, FleetError
from buoyfleet.manager import ConnectionManager
from buoyfleet.models.control import ControlOutcome
from buoyfleet.models.telemetry import TelemetryMessage
from buoyfleet.models.vehicle import Vehicle
from buoyfleet.registry import DeviceRegistry, JsonFileStorage, MemoryStorage, RegistryStorage
from buoyfleet.state.projector import VehicleProjector
from buoyfleet.state.store import TelemetryState, TelemetryStore

_logger = logging.getLogger(__name__)

VehiclesListener = Callable[[tuple[Vehicle, ...]], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class FleetSession:
    """Telemetry ingestion and device lifecycle for one dashboard session.

    Usage::

        async with FleetSession(FleetConfig.from_env()) as fleet:
            await fleet.manager.scan()
            for vehicle in fleet.vehicles:
                print(vehicle.id, vehicle.lat, vehicle.lon)
    """

    def __init__(
        self,
        config: FleetConfig | None = None,
        *,
        http_session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        storage: RegistryStorage | None = None,
        on_vehicles: VehiclesListener | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._config = config or FleetConfig()
        self._external_session = http_session is not None
        self._http_session = http_session
        self._transport = transport
        self._clock = clock
        self._on_vehicles = on_vehicles

        if storage is None:
            path = self._config.registry_path
            storage = JsonFileStorage(path) if path is not None else MemoryStorage()
        self._registry = DeviceRegistry.open(storage)
        self._store = TelemetryStore(clock=clock)
        self._projector = VehicleProjector(self._store, self._registry)
        self._store.subscribe(self._on_telemetry)

        self._manager: ConnectionManager | None = None
        self._broker: BrokerSession | None = None
        self._last_vehicles: tuple[Vehicle, ...] | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FleetSession:
        loop = asyncio.get_running_loop()
        if self._config.mqtt_enabled and not self._config.mqtt_url:
            raise FleetConfigError("mqtt_url is required when mqtt_enabled is set")
        if self._config.mqtt_enabled:
            parse_broker_url(self._config.mqtt_url)

        try:
            self._open(loop)
        except BaseException:
            await self.__aexit__(None, None, None)
            raise
        return self

    def _open(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(
                self._config.api_base_url,
                self._http_session,
                timeout=self._config.http_timeout,
            )

        self._manager = ConnectionManager(
            registry=self._registry,
            transport=self._transport,
            vehicles=self._projector.vehicles,
            clock=self._clock,
        )
        self._manager.start()

        if self._config.mqtt_enabled:
            broker = BrokerSession(BrokerSettings.from_config(self._config), loop=loop, logger=_logger)
            broker.on("message", self._store.ingest)
            broker.on("connect", self._on_broker_connect)
            broker.on("close", self._on_broker_close)
            broker.start()
            self._broker = broker

        self._refresh()

    async def __aexit__(self, *exc: Any) -> None:
        manager = self._manager
        self._manager = None
        if manager is not None:
            await manager.stop()

        broker = self._broker
        self._broker = None
        if broker is not None:
            broker.stop()

        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> FleetConfig:
        return self._config

    @property
    def registry(self) -> DeviceRegistry:
        return self._registry

    @property
    def store(self) -> TelemetryStore:
        return self._store

    @property
    def telemetry(self) -> TelemetryState:
        return self._store.snapshot()

    @property
    def vehicles(self) -> tuple[Vehicle, ...]:
        return self._projector.vehicles()

    @property
    def connected(self) -> bool:
        """Whether the broker connection is up."""
        return self._broker is not None and self._broker.connected

    @property
    def broker(self) -> BrokerSession | None:
        return self._broker

    @property
    def manager(self) -> ConnectionManager:
        if self._manager is None:
            raise FleetError("Session not started. Use 'async with FleetSession(...) as fleet:'")
        return self._manager

    @property
    def disconnected_since(self) -> Mapping[str, int]:
        return self.manager.disconnected_since

    # ------------------------------------------------------------------
    # Registry-changing operations
    # ------------------------------------------------------------------

    async def connect(self, ip: str) -> ControlOutcome:
        outcome = await self.manager.connect(ip)
        self._refresh()
        return outcome

    async def remove(self, ip: str, port: int) -> ControlOutcome:
        outcome = await self.manager.remove(ip, port)
        self._refresh()
        return outcome

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_telemetry(self, _device_id: str, _message: TelemetryMessage) -> None:
        self._refresh()

    def _on_broker_connect(self) -> None:
        _logger.info("Broker connected")

    def _on_broker_close(self) -> None:
        _logger.info("Broker connection lost, retrying")

    def _refresh(self) -> None:
        vehicles = self._projector.vehicles()
        if vehicles is self._last_vehicles:
            return
        self._last_vehicles = vehicles
        if self._manager is not None:
            self._manager.track_disconnections(vehicles)
        if self._on_vehicles is not None:
            try:
                self._on_vehicles(vehicles)
            except Exception:
                _logger.exception("Vehicles listener failed")
