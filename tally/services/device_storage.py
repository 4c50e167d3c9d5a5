"""Device-local key/value storage used by the client-side session modules.

Mirrors browser localStorage semantics: string keys, string values,
absence is meaningful. Callers parse values themselves.

Implementations:
- InMemoryDeviceStorage: tests and ephemeral sessions.
- JsonFileDeviceStorage: one JSON object on disk (desktop/CLI clients).
"""

import json
import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class StorageKeys:
    """Logical device storage keys (single source of truth)."""

    GUEST_MODE = "tally-guest-mode"
    GUEST_TRANSACTIONS = "tally-guest-transactions"
    GUEST_BUSINESS = "tally-guest-business"
    INVENTORY_ITEMS = "tally-inventory-items"
    INVENTORY_MOVEMENTS = "tally-inventory-movements"
    COUNTRY = "tally-country"
    LANGUAGE = "tally-language"
    WELCOME_SEEN = "tally-welcome-seen"
    DEV_BYPASS_AUTH = "dev-bypass-auth"


class DeviceStorage(Protocol):
    """Minimal localStorage-like interface."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryDeviceStorage:
    """Dict-backed DeviceStorage."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Copy of the current contents (for assertions)."""
        return dict(self._data)


class JsonFileDeviceStorage:
    """DeviceStorage persisted as a single JSON object.

    Every write rewrites the whole file. An unreadable or corrupt file is
    treated as empty storage.

    Args:
        path: File location; parent directories are created on first write.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    def _read(self) -> dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Device storage at %s is corrupt; ignoring", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, sort_keys=True), encoding="utf-8")
        tmp.replace(self._path)

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)
