from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any

import pytest

from buoyfleet import _mqtt
from buoyfleet._mqtt import BrokerSession, BrokerSettings, BrokerState, parse_broker_url
from buoyfleet.config import FleetConfig
from buoyfleet.exceptions import FleetBrokerError, FleetConfigError


class _FakeClient:
    """Records the paho calls made by the session."""

    instances: list[_FakeClient] = []

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.calls: list[tuple[Any, ...]] = []
        self.subscribed: list[str] = []
        self.published: list[tuple[str, Any]] = []
        self.connect_timeout = 0.0
        _FakeClient.instances.append(self)

    def enable_logger(self, _logger: Any) -> None:
        pass

    def ws_set_options(self, path: str) -> None:
        self.calls.append(("ws_set_options", path))

    def tls_set(self) -> None:
        self.calls.append(("tls_set",))

    def username_pw_set(self, username: str, password: str | None) -> None:
        self.calls.append(("username_pw_set", username, password))

    def reconnect_delay_set(self, min_delay: int, max_delay: int) -> None:
        self.calls.append(("reconnect_delay_set", min_delay, max_delay))

    def connect_async(self, host: str, port: int, keepalive: int) -> None:
        self.calls.append(("connect_async", host, port, keepalive))

    def loop_start(self) -> None:
        self.calls.append(("loop_start",))

    def loop_stop(self) -> None:
        self.calls.append(("loop_stop",))

    def disconnect(self) -> None:
        self.calls.append(("disconnect",))

    def subscribe(self, topic: str, qos: int = 0) -> None:
        self.subscribed.append(topic)

    def unsubscribe(self, topic: str) -> None:
        self.calls.append(("unsubscribe", topic))

    def publish(self, topic: str, payload: Any, qos: int = 0, retain: bool = False) -> Any:
        self.published.append((topic, payload))
        return SimpleNamespace(rc=_mqtt.mqtt.MQTT_ERR_SUCCESS)


@pytest.fixture
def fake_client(monkeypatch: pytest.MonkeyPatch) -> type[_FakeClient]:
    _FakeClient.instances = []
    monkeypatch.setattr("buoyfleet._mqtt.mqtt.Client", _FakeClient)
    return _FakeClient


def _reason(value: int) -> Any:
    return SimpleNamespace(value=value)


def _session(url: str = "ws://10.8.0.1:9001/mqtt", **kwargs: Any) -> BrokerSession:
    settings = BrokerSettings(url=url, **kwargs)
    return BrokerSession(settings, loop=asyncio.get_running_loop())


async def _drain() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.mark.parametrize(
    ("url", "host", "port", "transport", "tls", "path"),
    [
        ("mqtt://10.8.0.1", "10.8.0.1", 1883, "tcp", False, "/mqtt"),
        ("10.8.0.1:1884", "10.8.0.1", 1884, "tcp", False, "/mqtt"),
        ("mqtts://broker.local", "broker.local", 8883, "tcp", True, "/mqtt"),
        ("ws://10.8.0.1:9001/mqtt", "10.8.0.1", 9001, "websockets", False, "/mqtt"),
        ("wss://broker.local/ws", "broker.local", 443, "websockets", True, "/ws"),
    ],
)
def test_parse_broker_url(url: str, host: str, port: int, transport: str, tls: bool, path: str) -> None:
    endpoint = parse_broker_url(url)

    assert (endpoint.host, endpoint.port, endpoint.transport, endpoint.tls, endpoint.path) == (
        host,
        port,
        transport,
        tls,
        path,
    )


@pytest.mark.parametrize("url", ["", "   ", "http://10.8.0.1", "mqtt://"])
def test_parse_broker_url_rejects_invalid(url: str) -> None:
    with pytest.raises(FleetConfigError):
        parse_broker_url(url)


def test_settings_from_config() -> None:
    config = FleetConfig(mqtt_url="mqtt://10.8.0.1", mqtt_username="ops", mqtt_password="pw", registry_path=None)

    settings = BrokerSettings.from_config(config)

    assert settings.url == "mqtt://10.8.0.1"
    assert settings.username == "ops"
    assert settings.reconnect_interval == 2.0
    assert settings.connect_timeout == 10.0
    assert settings.topic == "mavlink/+/json/#"


@pytest.mark.asyncio
async def test_start_configures_client(fake_client: type[_FakeClient]) -> None:
    session = _session(username="ops", password="pw")

    session.start()

    (client,) = fake_client.instances
    assert client.kwargs["clean_session"] is True
    assert client.kwargs["transport"] == "websockets"
    assert ("ws_set_options", "/mqtt") in client.calls
    assert ("username_pw_set", "ops", "pw") in client.calls
    assert ("reconnect_delay_set", 2, 2) in client.calls
    assert ("connect_async", "10.8.0.1", 9001, 60) in client.calls
    assert client.calls[-1] == ("loop_start",)
    assert client.connect_timeout == 10.0
    assert session.state is BrokerState.CONNECTING
    assert session.is_running


@pytest.mark.asyncio
async def test_connect_subscribes_wildcard_and_emits(fake_client: type[_FakeClient]) -> None:
    session = _session()
    events: list[str] = []
    session.on("connect", lambda: events.append("connect"))
    session.start()
    client = fake_client.instances[0]

    session._on_connect(client, None, None, _reason(0), None)  # type: ignore[arg-type]
    await _drain()

    assert client.subscribed == ["mavlink/+/json/#"]
    assert session.connected
    assert events == ["connect"]


@pytest.mark.asyncio
async def test_messages_are_dispatched_on_the_loop(fake_client: type[_FakeClient]) -> None:
    session = _session()
    received: list[tuple[str, bytes]] = []
    session.on("message", lambda topic, payload: received.append((topic, payload)))
    session.start()

    message = SimpleNamespace(topic="mavlink/dev/json/HEARTBEAT", payload=b"{}")
    session._on_message(fake_client.instances[0], None, message)  # type: ignore[arg-type]
    assert received == []
    await _drain()

    assert received == [("mavlink/dev/json/HEARTBEAT", b"{}")]


@pytest.mark.asyncio
async def test_drop_emits_close_then_reconnect(fake_client: type[_FakeClient]) -> None:
    session = _session()
    events: list[str] = []
    for name in ("connect", "close", "reconnect"):
        session.on(name, lambda name=name: events.append(name))  # type: ignore[misc]
    session.start()
    client = fake_client.instances[0]

    session._on_connect(client, None, None, _reason(0), None)  # type: ignore[arg-type]
    session._on_disconnect(client, None, None, _reason(7), None)  # type: ignore[arg-type]
    await _drain()

    assert events == ["connect", "close", "reconnect"]
    assert session.state is BrokerState.CONNECTING

    session._on_connect(client, None, None, _reason(0), None)  # type: ignore[arg-type]
    await _drain()
    assert client.subscribed == ["mavlink/+/json/#", "mavlink/+/json/#"]
    assert session.connected


@pytest.mark.asyncio
async def test_refused_connect_emits_error(fake_client: type[_FakeClient]) -> None:
    session = _session()
    errors: list[Exception] = []
    session.on("error", errors.append)
    session.start()

    session._on_connect(fake_client.instances[0], None, None, _reason(5), None)  # type: ignore[arg-type]
    session._on_connect_fail(fake_client.instances[0], None)  # type: ignore[arg-type]
    await _drain()

    assert len(errors) == 2
    assert all(isinstance(error, FleetBrokerError) for error in errors)
    assert fake_client.instances[0].subscribed == []
    assert session.state is BrokerState.CONNECTING


@pytest.mark.asyncio
async def test_stop_disconnects_and_ignores_late_callbacks(fake_client: type[_FakeClient]) -> None:
    session = _session()
    events: list[str] = []
    session.on("connect", lambda: events.append("connect"))
    session.on("reconnect", lambda: events.append("reconnect"))
    session.start()
    client = fake_client.instances[0]

    session.stop()
    session._on_connect(client, None, None, _reason(0), None)  # type: ignore[arg-type]
    session._on_disconnect(client, None, None, _reason(0), None)  # type: ignore[arg-type]
    await _drain()

    assert client.calls[-2:] == [("disconnect",), ("loop_stop",)]
    assert events == []
    assert session.state is BrokerState.DISCONNECTED
    assert not session.is_running


@pytest.mark.asyncio
async def test_connect_failures_after_stop_are_ignored(fake_client: type[_FakeClient]) -> None:
    session = _session()
    errors: list[Exception] = []
    session.on("error", errors.append)
    session.start()
    client = fake_client.instances[0]

    session.stop()
    session._on_connect_fail(client, None)  # type: ignore[arg-type]
    session._on_connect(client, None, None, _reason(5), None)  # type: ignore[arg-type]
    await _drain()

    assert errors == []
    assert session.state is BrokerState.DISCONNECTED


@pytest.mark.asyncio
async def test_listener_failure_does_not_break_dispatch(fake_client: type[_FakeClient]) -> None:
    session = _session()
    received: list[str] = []

    def _broken(_topic: str, _payload: bytes) -> None:
        raise RuntimeError("boom")

    session.on("message", _broken)
    session.on("message", lambda topic, _payload: received.append(topic))
    session.start()

    session._on_message(fake_client.instances[0], None, SimpleNamespace(topic="t/a/json/b", payload=b""))  # type: ignore[arg-type]
    await _drain()

    assert received == ["t/a/json/b"]


@pytest.mark.asyncio
async def test_publish_requires_connection(fake_client: type[_FakeClient]) -> None:
    session = _session()
    session.start()
    client = fake_client.instances[0]

    assert session.publish("cmd/dev", {"a": 1}) is False

    session._on_connect(client, None, None, _reason(0), None)  # type: ignore[arg-type]
    await _drain()

    assert session.publish("cmd/dev", {"a": 1}) is True
    assert client.published == [("cmd/dev", json.dumps({"a": 1}, separators=(",", ":")))]


@pytest.mark.asyncio
async def test_unknown_event_is_rejected() -> None:
    session = _session()

    with pytest.raises(ValueError):
        session.on("bogus", lambda: None)  # type: ignore[arg-type]
