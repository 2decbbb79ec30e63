"""Topic and payload codec for the telemetry channel.

Topics follow ``mavlink/{deviceId}/json/{kind}``; device ids encode the
buoy's control endpoint as ``10_8_0_53_14550`` (ip with underscores, then
the port). Nothing in this module raises on malformed input.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from buoyfleet._constants import TOPIC_DEVICE_SEGMENT, TOPIC_KIND_SEGMENT

_MIN_TOPIC_SEGMENTS = TOPIC_KIND_SEGMENT + 1


@dataclass(frozen=True)
class TopicParts:
    """Device id and message kind carried by a telemetry topic."""

    device_id: str
    kind: str


def decode_topic(topic: str) -> TopicParts | None:
    """Split *topic* into device id and kind, or ``None`` when malformed."""
    parts = topic.split("/")
    if len(parts) < _MIN_TOPIC_SEGMENTS:
        return None
    device_id = parts[TOPIC_DEVICE_SEGMENT]
    kind = parts[TOPIC_KIND_SEGMENT]
    if not device_id or not kind:
        return None
    return TopicParts(device_id=device_id, kind=kind)


def decode_payload(payload: bytes | bytearray | str) -> Any:
    """Decode a payload into JSON data, wrapping undecodable text as ``{"raw": text}``."""
    if isinstance(payload, (bytes, bytearray)):
        text = bytes(payload).decode("utf-8", errors="replace")
    else:
        text = payload
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


def device_id_for(ip: str, port: int) -> str:
    """Build the device id for an ``ip:port`` endpoint."""
    return f"{ip.replace('.', '_')}_{port}"


def parse_device_id(device_id: str) -> tuple[str, int] | None:
    """Reverse :func:`device_id_for`; ``None`` when *device_id* is not ``a_b_c_d_port``."""
    parts = device_id.split("_")
    if len(parts) != 5:
        return None
    octets, port_text = parts[:4], parts[4]
    if not all(octet.isdigit() for octet in octets) or not port_text.isdigit():
        return None
    return ".".join(octets), int(port_text)


def ip_of_device(device_id: str) -> str:
    """Return the ip part of a device id (first four segments, port dropped)."""
    return ".".join(device_id.split("_")[:4])


def preview_payload(payload: bytes | bytearray | str, *, max_chars: int = 200) -> str:
    """Shorten a payload for debug logs."""
    if isinstance(payload, (bytes, bytearray)):
        text = bytes(payload).decode("utf-8", errors="replace")
    else:
        text = payload
    if len(text) > max_chars:
        return f"{text[:max_chars]}…<truncated {len(text) - max_chars} chars>"
    return text
