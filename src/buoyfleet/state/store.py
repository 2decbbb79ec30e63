"""Telemetry store: latest message per device and message kind.

This is the only component that merges incoming broker messages. Writes
are copy-on-write, so a snapshot handed out earlier never changes under
its holder.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from types import MappingProxyType

from buoyfleet.codec import decode_payload, decode_topic, preview_payload
from buoyfleet.models.telemetry import TelemetryMessage

_logger = logging.getLogger(__name__)

TelemetryState = Mapping[str, Mapping[str, TelemetryMessage]]
TelemetryListener = Callable[[str, TelemetryMessage], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class TelemetryStore:
    """In-memory ``device_id -> kind -> TelemetryMessage`` mapping.

    Last write wins per ``(device_id, kind)``; no embedded sequence number
    is consulted. Device entries are never pruned.
    """

    def __init__(self, *, clock: Callable[[], int] = _now_ms) -> None:
        self._clock = clock
        self._devices: dict[str, Mapping[str, TelemetryMessage]] = {}
        self._revision = 0
        self._snapshot: TelemetryState = MappingProxyType({})
        self._snapshot_revision = 0
        self._listeners: list[TelemetryListener] = []

    @property
    def revision(self) -> int:
        """Monotonic counter bumped on every accepted message."""
        return self._revision

    def ingest(self, topic: str, payload: bytes | bytearray | str) -> TelemetryMessage | None:
        """Decode and store one broker message.

        Messages whose topic carries no device id or kind are dropped and
        ``None`` is returned.
        """
        parts = decode_topic(topic)
        if parts is None:
            _logger.debug("Dropping message on malformed topic=%s", topic)
            return None

        message = TelemetryMessage(
            timestamp=self._clock(),
            kind=parts.kind,
            data=decode_payload(payload),
        )
        _logger.debug(
            "Telemetry device=%s kind=%s payload=%s",
            parts.device_id,
            parts.kind,
            preview_payload(payload),
        )
        self._apply(parts.device_id, message)
        return message

    def _apply(self, device_id: str, message: TelemetryMessage) -> None:
        kinds = dict(self._devices.get(device_id, {}))
        kinds[message.kind] = message
        self._devices[device_id] = MappingProxyType(kinds)
        self._revision += 1

        for listener in list(self._listeners):
            try:
                listener(device_id, message)
            except Exception:
                _logger.exception("Telemetry listener failed for device=%s", device_id)

    def snapshot(self) -> TelemetryState:
        """Return a read-only view of the current state."""
        if self._snapshot_revision != self._revision:
            self._snapshot = MappingProxyType(dict(self._devices))
            self._snapshot_revision = self._revision
        return self._snapshot

    def get(self, device_id: str, kind: str) -> TelemetryMessage | None:
        kinds = self._devices.get(device_id)
        if kinds is None:
            return None
        return kinds.get(kind)

    def devices(self) -> tuple[str, ...]:
        """Device ids in first-seen order."""
        return tuple(self._devices)

    def subscribe(self, listener: TelemetryListener) -> Callable[[], None]:
        """Register *listener* for every stored message; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
