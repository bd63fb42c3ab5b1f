from __future__ import annotations

import pytest


def test_parse_config_defaults_when_sections_absent():
    from experiences.core.config import parse_config

    cfg = parse_config(None)

    assert cfg.runtime.history_limit == 1000
    assert cfg.runtime.debug is False
    assert cfg.storage.duckdb_path is None
    assert cfg.storage.flush.every_n_decisions == 500
    assert cfg.logging.level == "INFO"
    assert cfg.section("exit_intent") is None


def test_parse_config_reads_sections():
    from experiences.core.config import parse_config

    cfg = parse_config(
        {
            "runtime": {"history_limit": 10, "debug": True},
            "storage": {"duckdb_path": "x.duckdb", "flush": {"every_n_decisions": 3}},
            "logging": {"level": "debug"},
            "scroll_depth": {"thresholds": [10, 90]},
        }
    )

    assert cfg.runtime.history_limit == 10
    assert cfg.runtime.debug is True
    assert cfg.storage.duckdb_path == "x.duckdb"
    assert cfg.storage.flush.every_n_decisions == 3
    assert cfg.storage.flush.or_every_seconds == 30.0
    assert cfg.logging.level == "DEBUG"
    assert cfg.section("scroll_depth") == {"thresholds": [10, 90]}


def test_history_limit_must_be_positive():
    from experiences.core.config import parse_config

    with pytest.raises(ValueError):
        parse_config({"runtime": {"history_limit": 0}})


def test_non_mapping_section_raises():
    from experiences.core.config import parse_config

    cfg = parse_config({"time_delay": 5000})
    with pytest.raises(TypeError):
        cfg.section("time_delay")


def test_load_config_from_yaml(tmp_path):
    from experiences.core.config import load_config

    p = tmp_path / "runtime.yaml"
    p.write_text("runtime:\n  history_limit: 25\ntime_delay:\n  delay_ms: 5000\n")

    cfg = load_config(p)
    assert cfg.runtime.history_limit == 25
    assert cfg.section("time_delay") == {"delay_ms": 5000}


def test_load_yaml_rejects_non_mapping(tmp_path):
    from experiences.core.config import load_yaml

    p = tmp_path / "bad.yaml"
    p.write_text("- a\n- b\n")

    with pytest.raises(ValueError):
        load_yaml(p)


def test_empty_yaml_is_empty_config(tmp_path):
    from experiences.core.config import load_config

    p = tmp_path / "empty.yaml"
    p.write_text("")

    cfg = load_config(p)
    assert cfg.runtime.history_limit == 1000


@pytest.mark.parametrize(
    "data",
    [
        {"storge": {"duckdb_path": "x.duckdb"}},
        {"runtime": {"histroy_limit": 5}},
        {"storage": {"duckdb": "x.duckdb"}},
        {"storage": {"flush": {"every_n": 5}}},
        {"logging": {"lvl": "DEBUG"}},
    ],
)
def test_unknown_config_keys_raise(data):
    from experiences.core.config import parse_config

    with pytest.raises(ValueError):
        parse_config(data)


def test_shipped_runtime_yaml_parses():
    from pathlib import Path

    from experiences.core.config import load_config

    root = Path(__file__).resolve().parents[2]
    cfg = load_config(root / "config" / "runtime.yaml")
    assert cfg.storage.audit_decisions is True
