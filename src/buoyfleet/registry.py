"""Device registry: the persisted set of buoys the operator tracks.

Membership is independent of whether a device is currently broadcasting.
The registry is stored as one JSON array of device ids under a single key
and rewritten in full on every mutation.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Protocol

from buoyfleet._constants import REGISTRY_KEY

_logger = logging.getLogger(__name__)


class RegistryStorage(Protocol):
    """String key/value storage backing the registry."""

    def read(self, key: str) -> str | None: ...

    def write(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """Volatile storage, for tests and sessions without persistence."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    def read(self, key: str) -> str | None:
        return self.values.get(key)

    def write(self, key: str, value: str) -> None:
        self.values[key] = value


class JsonFileStorage:
    """Key/value strings kept in one JSON object file.

    A missing, unreadable or malformed file reads as empty. Writes go
    through a temporary file and an atomic replace.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            _logger.warning("Ignoring unreadable registry file %s", self.path, exc_info=True)
            return {}
        if not isinstance(data, dict):
            return {}
        return {key: value for key, value in data.items() if isinstance(value, str)}

    def read(self, key: str) -> str | None:
        return self._load().get(key)

    def write(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        temp_path.replace(self.path)


def _parse_ids(raw: str | None) -> dict[str, None]:
    if raw is None:
        return {}
    try:
        decoded = json.loads(raw)
    except ValueError:
        _logger.warning("Registry storage is corrupt; starting with an empty registry")
        return {}
    if not isinstance(decoded, list):
        return {}
    return dict.fromkeys(item for item in decoded if isinstance(item, str))


class DeviceRegistry:
    """Ordered set of tracked device ids.

    ``add`` and ``remove`` are idempotent. Every effective mutation is
    persisted immediately; a failed write is logged and the in-memory set
    stays authoritative for the running session.
    """

    def __init__(self, storage: RegistryStorage, *, key: str = REGISTRY_KEY) -> None:
        self._storage = storage
        self._key = key
        # dict keys keep insertion order; values are unused.
        self._ids: dict[str, None] = {}
        self._revision = 0

    @classmethod
    def open(cls, storage: RegistryStorage, *, key: str = REGISTRY_KEY) -> DeviceRegistry:
        """Create a registry and load its persisted contents."""
        registry = cls(storage, key=key)
        registry.load()
        return registry

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(self._ids)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    def load(self) -> frozenset[str]:
        """Replace the in-memory set with the persisted one; never raises."""
        try:
            raw = self._storage.read(self._key)
        except OSError:
            _logger.warning("Registry storage read failed", exc_info=True)
            raw = None
        self._ids = _parse_ids(raw)
        self._revision += 1
        _logger.debug("Registry loaded ids=%s", list(self._ids))
        return frozenset(self._ids)

    def save(self, ids: Iterable[str] | None = None) -> None:
        """Serialize the full set (or *ids*, which then becomes the set) to storage."""
        if ids is not None:
            self._ids = dict.fromkeys(ids)
            self._revision += 1
        try:
            self._storage.write(self._key, json.dumps(list(self._ids)))
        except OSError:
            _logger.warning("Registry storage write failed", exc_info=True)

    def add(self, device_id: str) -> bool:
        """Add *device_id*; returns ``False`` when it was already present."""
        if device_id in self._ids:
            return False
        self._ids[device_id] = None
        self._revision += 1
        self.save()
        return True

    def remove(self, device_id: str) -> bool:
        """Remove *device_id*; returns ``False`` when it was absent."""
        if device_id not in self._ids:
            return False
        del self._ids[device_id]
        self._revision += 1
        self.save()
        return True
