from __future__ import annotations

import time

import simpy


def _decision(experience_id: str, show: bool = True):
    from experiences.features.context.service import build_context
    from experiences.features.decisions.service import DecisionRecorder

    ctx = build_context({"url": "https://shop.test/products/9"}, now_ms=1_000)
    return DecisionRecorder.assemble(
        show=show,
        experience_id=experience_id,
        reasons=["URL matches targeting rule"],
        trace=[],
        context=ctx,
        evaluated_at=1_000,
        started_at=time.perf_counter(),
        experiences_evaluated=1,
    )


def _rows_from_disk(db_path) -> list[tuple]:
    import duckdb

    con = duckdb.connect(str(db_path))
    try:
        return con.execute(
            "SELECT decision_seq, shown, experience_id, url, reasons_json FROM decisions "
            "ORDER BY decision_seq"
        ).fetchall()
    finally:
        con.close()


def test_audit_flush_by_count(tmp_path):
    from experiences.features.audit.service import DecisionAuditLog
    from experiences.features.persistence.duckdb_adapter import DuckDBAdapter

    adapter = DuckDBAdapter(path=str(tmp_path / "audit.duckdb"), clean_slate=True)
    log = DecisionAuditLog(adapter=adapter, every_n_decisions=3, or_every_seconds=10_000.0)
    log.open()

    log.emit(1, _decision("a"))
    log.emit(2, _decision("b"))
    assert adapter.count_decisions() == 0
    assert log.pending == 2

    log.emit(3, _decision("c", show=False))
    assert adapter.count_decisions() == 3
    assert adapter.count_decisions("c") == 1

    log.close()
    adapter.close()


def test_audit_periodic_flush(tmp_path):
    from experiences.features.audit.service import DecisionAuditLog
    from experiences.features.persistence.duckdb_adapter import DuckDBAdapter

    adapter = DuckDBAdapter(path=str(tmp_path / "audit.duckdb"), clean_slate=True)
    env = simpy.Environment()
    log = DecisionAuditLog(adapter=adapter, every_n_decisions=1_000_000, or_every_seconds=5.0)
    log.open()
    log.start_periodic_flush(env)

    log.on_decision_recorded({"seq": 1, "decision": _decision("a")})
    assert adapter.count_decisions() == 0

    # run slightly past the boundary to ensure the timer event is processed
    env.run(until=5.000001)
    assert adapter.count_decisions() == 1

    log.close()
    adapter.close()


def test_audit_close_flushes_remaining(tmp_path):
    from experiences.features.audit.service import DecisionAuditLog
    from experiences.features.persistence.duckdb_adapter import DuckDBAdapter

    db_path = tmp_path / "audit.duckdb"
    adapter = DuckDBAdapter(path=str(db_path), clean_slate=True)
    log = DecisionAuditLog(adapter=adapter, every_n_decisions=1_000_000, or_every_seconds=10_000.0)
    log.open()

    log.emit(7, _decision("a"))
    log.close()
    adapter.close()

    rows = _rows_from_disk(db_path)
    assert rows == [(7, True, "a", "https://shop.test/products/9", '["URL matches targeting rule"]')]


def test_emit_before_open_raises(tmp_path):
    import pytest

    from experiences.features.audit.service import DecisionAuditLog
    from experiences.features.persistence.duckdb_adapter import DuckDBAdapter

    adapter = DuckDBAdapter(path=str(tmp_path / "audit.duckdb"))
    log = DecisionAuditLog(adapter=adapter, every_n_decisions=1, or_every_seconds=1.0)

    with pytest.raises(RuntimeError):
        log.emit(1, _decision("a"))
