from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class RuntimeConfig:
    history_limit: int = 1000
    debug: bool = False


@dataclass(frozen=True)
class FlushConfig:
    every_n_decisions: int = 500
    or_every_seconds: float = 30.0


@dataclass(frozen=True)
class StorageConfig:
    # None -> in-memory stores only
    duckdb_path: str | None = None
    clean_slate: bool = False
    audit_decisions: bool = False
    flush: FlushConfig = FlushConfig()


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class ExperiencesConfig:
    runtime: RuntimeConfig = RuntimeConfig()
    storage: StorageConfig = StorageConfig()
    logging: LoggingConfig = LoggingConfig()
    # raw parsed YAML; trigger sections are read from here
    raw: dict[str, Any] = field(default_factory=dict)

    def section(self, name: str) -> dict[str, Any] | None:
        """Returns a trigger/plugin section, or None when it is absent."""
        value = self.raw.get(name)
        if value is None:
            return None
        if not isinstance(value, dict):
            raise TypeError(f"Config section '{name}' must be a mapping/dict")
        return value


SECTIONS = {
    "runtime",
    "storage",
    "logging",
    "frequency",
    "exit_intent",
    "scroll_depth",
    "time_delay",
    "page_visits",
}


def _check_keys(name: str, raw: dict[str, Any], allowed: set[str]) -> None:
    if not isinstance(raw, dict):
        raise TypeError(f"Config section '{name}' must be a mapping/dict")
    unknown = set(raw) - allowed
    if unknown:
        raise ValueError(f"{name} has unknown keys {sorted(unknown)}. Allowed={sorted(allowed)}")


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    data = yaml.safe_load(p.read_text())
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must parse to a dict at the top level.")
    return data


def parse_config(data: dict[str, Any] | None) -> ExperiencesConfig:
    data = data or {}
    _check_keys("config", data, SECTIONS)

    # every section is optional
    runtime = data.get("runtime") or {}
    storage = data.get("storage") or {}
    logging_cfg = data.get("logging") or {}

    _check_keys("runtime", runtime, {"history_limit", "debug"})
    _check_keys("storage", storage, {"duckdb_path", "clean_slate", "audit_decisions", "flush"})
    flush = storage.get("flush") or {}
    _check_keys("storage.flush", flush, {"every_n_decisions", "or_every_seconds"})
    _check_keys("logging", logging_cfg, {"level"})

    history_limit = int(runtime.get("history_limit", 1000))
    if history_limit <= 0:
        raise ValueError("runtime.history_limit must be > 0")

    runtime_cfg = RuntimeConfig(
        history_limit=history_limit,
        debug=bool(runtime.get("debug", False)),
    )

    duckdb_path = storage.get("duckdb_path")
    storage_cfg = StorageConfig(
        duckdb_path=None if duckdb_path is None else str(duckdb_path),
        clean_slate=bool(storage.get("clean_slate", False)),
        audit_decisions=bool(storage.get("audit_decisions", False)),
        flush=FlushConfig(
            every_n_decisions=int(flush.get("every_n_decisions", 500)),
            or_every_seconds=float(flush.get("or_every_seconds", 30.0)),
        ),
    )

    log_cfg = LoggingConfig(level=str(logging_cfg.get("level", "INFO")).upper())

    return ExperiencesConfig(runtime=runtime_cfg, storage=storage_cfg, logging=log_cfg, raw=data)


def load_config(path: str | Path) -> ExperiencesConfig:
    data = load_yaml(path)
    return parse_config(data)
