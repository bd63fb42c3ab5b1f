from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from experiences.core.logging import get_logger

from .duckdb_adapter import DuckDBAdapter

NowMs = Callable[[], int]


class KeyValueStore(Protocol):
    """
    Minimal storage surface the ledger and trigger sources need.
    Values must be JSON-serializable.
    """

    def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any, ttl_s: float | None = None) -> None: ...
    def remove(self, key: str) -> None: ...


def _expires_at(now_ms: NowMs, ttl_s: float | None) -> int | None:
    if ttl_s is None or ttl_s <= 0:
        return None
    return int(now_ms() + float(ttl_s) * 1000.0)


class MemoryStore:
    """
    Ephemeral store. Values are round-tripped through JSON so callers never
    share mutable state with the store.
    """

    def __init__(self, now_ms: NowMs) -> None:
        self._now_ms = now_ms
        self._items: dict[str, tuple[str, int | None]] = {}

    def get(self, key: str) -> Any | None:
        item = self._items.get(key)
        if item is None:
            return None
        value_json, expires_at_ms = item
        if expires_at_ms is not None and self._now_ms() >= expires_at_ms:
            del self._items[key]
            return None
        return json.loads(value_json)

    def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        self._items[key] = (json.dumps(value), _expires_at(self._now_ms, ttl_s))

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class DuckDBStore:
    """
    Persistent store over the DuckDB ``kv`` table.
    """

    def __init__(self, adapter: DuckDBAdapter, now_ms: NowMs) -> None:
        self.adapter = adapter
        self._now_ms = now_ms
        self._logger = get_logger(__name__)

    def get(self, key: str) -> Any | None:
        row = self.adapter.kv_get(key)
        if row is None:
            return None
        value_json, expires_at_ms = row
        if expires_at_ms is not None and self._now_ms() >= expires_at_ms:
            self.adapter.kv_remove(key)
            return None
        try:
            return json.loads(value_json)
        except (json.JSONDecodeError, TypeError) as e:
            # a corrupt row reads as missing
            self._logger.warning(
                "unreadable stored value",
                extra={"feature": "storage", "event": "get", "reason": f"{key}: {e!r}"},
            )
            return None

    def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        self.adapter.kv_set(key, json.dumps(value), _expires_at(self._now_ms, ttl_s))

    def remove(self, key: str) -> None:
        self.adapter.kv_remove(key)


class FallbackStore:
    """
    Best-effort wrapper: the first failure of the primary store switches all
    further reads/writes to an in-memory store. Capping stays correct for the
    rest of the session; cross-session persistence is lost.
    """

    def __init__(self, primary: KeyValueStore, now_ms: NowMs, *, name: str = "local") -> None:
        self._primary: KeyValueStore = primary
        self._fallback = MemoryStore(now_ms)
        self._failed = False
        self._name = name
        self._logger = get_logger(__name__)

    @property
    def degraded(self) -> bool:
        return self._failed

    def _active(self) -> KeyValueStore:
        return self._fallback if self._failed else self._primary

    def _degrade(self, op: str, exc: Exception) -> None:
        self._failed = True
        self._logger.warning(
            "storage failure; falling back to in-memory store",
            extra={"feature": "storage", "event": op, "reason": f"{self._name}: {exc!r}"},
        )

    def get(self, key: str) -> Any | None:
        if not self._failed:
            try:
                return self._primary.get(key)
            except Exception as e:  # noqa: BLE001
                self._degrade("get", e)
        return self._fallback.get(key)

    def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        if not self._failed:
            try:
                self._primary.set(key, value, ttl_s)
                return
            except Exception as e:  # noqa: BLE001
                self._degrade("set", e)
        self._fallback.set(key, value, ttl_s)

    def remove(self, key: str) -> None:
        if not self._failed:
            try:
                self._primary.remove(key)
                return
            except Exception as e:  # noqa: BLE001
                self._degrade("remove", e)
        self._fallback.remove(key)


@dataclass(frozen=True)
class StorageBackends:
    """
    session: lives as long as the runtime's session
    local: survives across sessions (persistent when DuckDB is configured)
    """

    session: KeyValueStore
    local: KeyValueStore

    @classmethod
    def in_memory(cls, now_ms: NowMs) -> StorageBackends:
        return cls(session=MemoryStore(now_ms), local=MemoryStore(now_ms))

    @classmethod
    def with_duckdb(cls, adapter: DuckDBAdapter, now_ms: NowMs) -> StorageBackends:
        return cls(
            session=MemoryStore(now_ms),
            local=FallbackStore(DuckDBStore(adapter, now_ms), now_ms, name=adapter.path),
        )
