"""Session configuration for buoyfleet."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from buoyfleet._constants import (
    BASE_URL,
    MQTT_CONNECT_TIMEOUT,
    MQTT_KEEPALIVE,
    MQTT_RECONNECT_INTERVAL,
    TELEMETRY_TOPIC,
)


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _default_registry_path() -> Path:
    return Path.home() / ".buoyfleet" / "registry.json"


@dataclasses.dataclass(frozen=True)
class FleetConfig:
    """Session configuration.

    Parameters
    ----------
    mqtt_url : str
        Broker URL, e.g. ``"ws://broker.local:9001/mqtt"`` or
        ``"mqtt://10.8.0.1:1883"``.
    mqtt_username : str or None
        Broker username.
    mqtt_password : str or None
        Broker password.
    mqtt_client_id : str
        Client identifier. Empty lets the broker assign one.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_reconnect_interval : float
        Fixed delay between reconnect attempts, in seconds.
    mqtt_connect_timeout : float
        Seconds to wait for CONNACK before the attempt counts as failed.
    mqtt_topic : str
        Wildcard subscription covering every device and message kind.
    mqtt_enabled : bool
        Open the broker connection on session start.
    api_base_url : str
        Control-plane REST base URL.
    http_timeout : float
        Total timeout for each control-plane request, in seconds.
    registry_path : Path or None
        JSON file backing the device registry. ``None`` keeps the
        registry in memory only.
    """

    mqtt_url: str = ""
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_client_id: str = ""
    mqtt_keepalive: int = MQTT_KEEPALIVE
    mqtt_reconnect_interval: float = MQTT_RECONNECT_INTERVAL
    mqtt_connect_timeout: float = MQTT_CONNECT_TIMEOUT
    mqtt_topic: str = TELEMETRY_TOPIC
    mqtt_enabled: bool = True
    api_base_url: str = BASE_URL
    http_timeout: float = 10.0
    registry_path: Path | None = dataclasses.field(default_factory=_default_registry_path)

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetConfig:
        """Create configuration from ``BUOY_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "BUOY_MQTT_URL": "mqtt_url",
            "BUOY_MQTT_USERNAME": "mqtt_username",
            "BUOY_MQTT_PASSWORD": "mqtt_password",
            "BUOY_MQTT_CLIENT_ID": "mqtt_client_id",
            "BUOY_MQTT_TOPIC": "mqtt_topic",
            "BUOY_API_BASE_URL": "api_base_url",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        keepalive_env = env.get("BUOY_MQTT_KEEPALIVE")
        if keepalive_env is not None and "mqtt_keepalive" not in overrides:
            config_kwargs["mqtt_keepalive"] = int(keepalive_env)

        timeout_env = env.get("BUOY_HTTP_TIMEOUT")
        if timeout_env is not None and "http_timeout" not in overrides:
            config_kwargs["http_timeout"] = float(timeout_env)

        if "mqtt_enabled" not in overrides:
            config_kwargs["mqtt_enabled"] = _env_bool(env.get("BUOY_MQTT_ENABLED"), True)

        registry_env = env.get("BUOY_REGISTRY_PATH")
        if registry_env is not None and "registry_path" not in overrides:
            # An empty value opts out of persistence.
            config_kwargs["registry_path"] = Path(registry_env).expanduser() if registry_env.strip() else None

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
