"""Control-plane call outcomes and connection workflow snapshots."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ControlOutcome(BaseModel):
    """Result of one control-plane request.

    Every control-plane call resolves to one of these instead of raising:
    ``ok`` is ``True`` for 2xx responses; ``status_code`` is ``None`` when
    no response was received at all (``error`` then holds the reason).
    """

    model_config = ConfigDict(frozen=True)

    ok: bool
    status_code: int | None = None
    data: Any = None
    """Decoded JSON body (``{}`` when the body was empty or not JSON)."""
    error: str | None = None
    """Transport-level failure description."""

    @classmethod
    def success(cls, status_code: int, data: Any = None) -> ControlOutcome:
        return cls(ok=True, status_code=status_code, data=data)

    @classmethod
    def rejected(cls, status_code: int, data: Any = None) -> ControlOutcome:
        return cls(ok=False, status_code=status_code, data=data)

    @classmethod
    def failed(cls, error: str) -> ControlOutcome:
        return cls(ok=False, error=error)

    def error_message(self, default: str) -> str:
        """Server ``detail``/``message`` field, else the transport error, else *default*."""
        if isinstance(self.data, dict):
            for key in ("detail", "message"):
                value = self.data.get(key)
                if isinstance(value, str) and value:
                    return value
        if self.error:
            return self.error
        return default


class ConnectionStatus(BaseModel):
    """Read-only snapshot of the connection workflow state."""

    model_config = ConfigDict(frozen=True)

    scanned_ips: tuple[str, ...] = ()
    scanning: bool = False
    connecting_ips: frozenset[str] = frozenset()
    connect_error: str | None = None
    auto_retry: bool = False
    disconnected_since: dict[str, int] = Field(default_factory=dict)
    """Device id -> epoch ms when first observed offline."""
    online_count: int = 0
