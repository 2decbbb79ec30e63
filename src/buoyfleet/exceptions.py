"""Custom exception hierarchy for buoyfleet."""

from __future__ import annotations


class FleetError(Exception):
    """Base exception for all buoyfleet errors."""


class FleetConfigError(FleetError):
    """Invalid or missing configuration."""


class FleetTransportError(FleetError):
    """HTTP-level failure talking to the control plane (network, timeout, unreadable body)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class FleetBrokerError(FleetError):
    """Broker connection attempt refused or failed."""
