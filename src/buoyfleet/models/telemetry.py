"""Telemetry message model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TelemetryMessage(BaseModel):
    """The latest message received for one ``(device, kind)`` pair.

    Replaced wholesale whenever a newer message of the same kind arrives
    for the same device.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(..., description="Receive time, epoch milliseconds.")
    kind: str
    data: Any = Field(default=None, description="Decoded JSON payload, or {'raw': text}.")
