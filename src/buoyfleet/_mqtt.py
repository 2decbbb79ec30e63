"""Broker session: one owned paho-mqtt connection bridged onto asyncio.

paho's network thread owns the socket and the fixed-interval reconnect
loop; every callback is re-dispatched with ``call_soon_threadsafe`` so
listeners, and all session state, live on the event loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Literal, cast
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from buoyfleet._constants import MQTT_CONNECT_TIMEOUT, MQTT_KEEPALIVE, MQTT_RECONNECT_INTERVAL, TELEMETRY_TOPIC
from buoyfleet.codec import preview_payload
from buoyfleet.config import FleetConfig
from buoyfleet.exceptions import FleetBrokerError, FleetConfigError

BrokerEventName = Literal["message", "connect", "reconnect", "close", "error"]

_EVENTS: tuple[BrokerEventName, ...] = ("message", "connect", "reconnect", "close", "error")

_DEFAULT_PORTS = {
    "mqtt": 1883,
    "tcp": 1883,
    "mqtts": 8883,
    "ssl": 8883,
    "ws": 80,
    "wss": 443,
}


class BrokerState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class BrokerEndpoint:
    """Where and how to reach the broker."""

    host: str
    port: int
    transport: Literal["tcp", "websockets"]
    tls: bool
    path: str = "/mqtt"


def parse_broker_url(url: str) -> BrokerEndpoint:
    """Parse ``mqtt://``, ``mqtts://``, ``ws://`` or ``wss://`` broker URLs."""
    value = url.strip()
    if not value:
        raise FleetConfigError("Broker URL is empty")
    if "://" not in value:
        value = f"mqtt://{value}"

    parts = urlsplit(value)
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise FleetConfigError(f"Unsupported broker URL scheme: {scheme}")
    if not parts.hostname:
        raise FleetConfigError(f"Broker URL has no host: {url}")

    websockets = scheme in {"ws", "wss"}
    return BrokerEndpoint(
        host=parts.hostname,
        port=parts.port or _DEFAULT_PORTS[scheme],
        transport="websockets" if websockets else "tcp",
        tls=scheme in {"mqtts", "ssl", "wss"},
        path=(parts.path or "/mqtt") if websockets else "/mqtt",
    )


@dataclass(frozen=True)
class BrokerSettings:
    """Connection parameters for :class:`BrokerSession`."""

    url: str
    username: str | None = None
    password: str | None = None
    client_id: str = ""
    keepalive: int = MQTT_KEEPALIVE
    reconnect_interval: float = MQTT_RECONNECT_INTERVAL
    connect_timeout: float = MQTT_CONNECT_TIMEOUT
    topic: str = TELEMETRY_TOPIC

    @classmethod
    def from_config(cls, config: FleetConfig) -> BrokerSettings:
        return cls(
            url=config.mqtt_url,
            username=config.mqtt_username,
            password=config.mqtt_password,
            client_id=config.mqtt_client_id,
            keepalive=config.mqtt_keepalive,
            reconnect_interval=config.mqtt_reconnect_interval,
            connect_timeout=config.mqtt_connect_timeout,
            topic=config.mqtt_topic,
        )


class BrokerSession:
    """Owned broker connection with a fixed-backoff reconnect loop.

    Lifecycle is explicit: :meth:`start` once when the session starts,
    :meth:`stop` when it ends. There is no manual reconnect; after any
    drop the network thread retries every ``reconnect_interval`` seconds.
    """

    def __init__(
        self,
        settings: BrokerSettings,
        *,
        loop: asyncio.AbstractEventLoop,
        logger: logging.Logger | None = None,
    ) -> None:
        self._settings = settings
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._state = BrokerState.DISCONNECTED
        self._topics: list[str] = [settings.topic]
        self._listeners: dict[str, list[Callable[..., None]]] = {event: [] for event in _EVENTS}

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> BrokerState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is BrokerState.CONNECTED

    @property
    def is_running(self) -> bool:
        """Whether :meth:`start` was called and :meth:`stop` was not."""
        return self._running

    def on(self, event: BrokerEventName, callback: Callable[..., None]) -> None:
        """Register *callback* for *event*.

        Signatures: ``message(topic, payload)``, ``error(exc)``, and no
        arguments for ``connect``, ``reconnect`` and ``close``.
        """
        if event not in self._listeners:
            raise ValueError(f"Unknown broker event: {event}")
        self._listeners[event].append(callback)

    def off(self, event: BrokerEventName, callback: Callable[..., None]) -> None:
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def start(self) -> None:
        """Open the connection; failures are retried by the network thread."""
        if self._running:
            return
        endpoint = parse_broker_url(self._settings.url)
        self._logger.debug(
            "MQTT session start host=%s port=%s transport=%s tls=%s topic=%s",
            endpoint.host,
            endpoint.port,
            endpoint.transport,
            endpoint.tls,
            self._settings.topic,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._settings.client_id,
            clean_session=True,
            protocol=mqtt.MQTTv311,
            transport=endpoint.transport,
        )
        client.enable_logger(self._logger)
        if endpoint.transport == "websockets":
            client.ws_set_options(path=endpoint.path)
        if endpoint.tls:
            client.tls_set()
        if self._settings.username:
            client.username_pw_set(self._settings.username, self._settings.password)
        interval = max(1, int(self._settings.reconnect_interval))
        client.reconnect_delay_set(min_delay=interval, max_delay=interval)
        client.connect_timeout = self._settings.connect_timeout

        client.on_connect = self._on_connect
        client.on_connect_fail = self._on_connect_fail
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message

        self._client = client
        self._running = True
        self._state = BrokerState.CONNECTING
        client.connect_async(endpoint.host, endpoint.port, keepalive=self._settings.keepalive)
        client.loop_start()
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Force-close the connection and stop the network thread."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._state = BrokerState.DISCONNECTED

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def subscribe(self, topic: str) -> None:
        """Add *topic* to the subscriptions (re-applied on every connect)."""
        if topic not in self._topics:
            self._topics.append(topic)
        client = self._client
        if client is not None and self.connected:
            client.subscribe(topic, qos=0)

    def unsubscribe(self, topic: str) -> None:
        if topic in self._topics:
            self._topics.remove(topic)
        client = self._client
        if client is not None and self.connected:
            client.unsubscribe(topic)

    def publish(self, topic: str, payload: Any, *, qos: int = 0, retain: bool = False) -> bool:
        """Publish *payload* (dicts and lists JSON-encoded); ``False`` when not connected."""
        client = self._client
        if client is None or not self.connected:
            self._logger.debug("MQTT publish skipped, not connected topic=%s", topic)
            return False
        if isinstance(payload, (dict, list)):
            payload = json.dumps(payload, separators=(",", ":"))
        info = client.publish(topic, payload, qos=qos, retain=retain)
        return info.rc == mqtt.MQTT_ERR_SUCCESS

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _on_connect(
        self,
        client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.value != 0:
            self._logger.warning("MQTT connect refused: %s", reason_code)
            self._loop.call_soon_threadsafe(self._handle_failure, FleetBrokerError(f"Connect refused: {reason_code}"))
            return
        self._logger.debug("MQTT connected reason=%s", reason_code)
        for topic in list(self._topics):
            self._logger.debug("MQTT subscribing topic=%s", topic)
            client.subscribe(topic, qos=0)
        self._loop.call_soon_threadsafe(self._handle_connect)

    def _on_connect_fail(self, _client: mqtt.Client, _userdata: Any) -> None:
        self._logger.warning("MQTT connect attempt failed")
        self._loop.call_soon_threadsafe(self._handle_failure, FleetBrokerError("Connect attempt failed"))

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        self._logger.debug("MQTT disconnected: %s", reason_code)
        self._loop.call_soon_threadsafe(self._handle_close)

    def _on_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        self._logger.debug("Received PUBLISH topic=%s payload=%s", msg.topic, preview_payload(msg.payload))
        self._loop.call_soon_threadsafe(self._emit, "message", msg.topic, msg.payload)

    # ------------------------------------------------------------------
    # State transitions (event loop)
    # ------------------------------------------------------------------

    def _handle_connect(self) -> None:
        if not self._running:
            return
        self._state = BrokerState.CONNECTED
        self._emit("connect")

    def _handle_close(self) -> None:
        was_connected = self._state is BrokerState.CONNECTED
        self._state = BrokerState.DISCONNECTED
        if was_connected:
            self._emit("close")
        self._schedule_reconnect()

    def _handle_failure(self, error: FleetBrokerError) -> None:
        if not self._running:
            return
        self._state = BrokerState.DISCONNECTED
        self._emit("error", error)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        # The network thread performs the retry; this only mirrors it in state.
        if not self._running:
            return
        self._state = BrokerState.CONNECTING
        self._emit("reconnect")

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(*args)
            except Exception:
                self._logger.exception("MQTT %s listener failed", event)
