from __future__ import annotations

import os
import time
from collections.abc import Sequence
from dataclasses import dataclass

import duckdb

from .schema import DECISIONS_TABLE_NAME, KV_TABLE_NAME, create_schema


@dataclass(frozen=True)
class DuckDBWriteResult:
    num_rows: int
    duration_ms: float


class DuckDBAdapter:
    """
    DuckDB persistence adapter. Owns the connection and schema.
    """

    def __init__(self, path: str, *, clean_slate: bool = False) -> None:
        self.path = path
        self.clean_slate = clean_slate
        self._conn: duckdb.DuckDBPyConnection | None = None

    def open(self) -> None:
        if self._conn is not None:
            return
        if self.clean_slate and os.path.exists(self.path):
            os.remove(self.path)

        # Ensure parent dir exists
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        self._conn = duckdb.connect(self.path)
        create_schema(self._conn)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise RuntimeError("DuckDBAdapter not opened. Call open() first.")
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ----- key/value -----
    def kv_get(self, key: str) -> tuple[str, int | None] | None:
        row = self.conn.execute(
            f"SELECT value_json, expires_at_ms FROM {KV_TABLE_NAME} WHERE key = ?",
            [key],
        ).fetchone()
        if row is None:
            return None
        return str(row[0]), None if row[1] is None else int(row[1])

    def kv_set(self, key: str, value_json: str, expires_at_ms: int | None) -> None:
        self.conn.execute(
            f"INSERT OR REPLACE INTO {KV_TABLE_NAME} (key, value_json, expires_at_ms) VALUES (?, ?, ?)",
            [key, value_json, expires_at_ms],
        )

    def kv_remove(self, key: str) -> None:
        self.conn.execute(f"DELETE FROM {KV_TABLE_NAME} WHERE key = ?", [key])

    # ----- decision audit -----
    def write_decisions(self, rows: Sequence[tuple]) -> DuckDBWriteResult:
        """
        Writes a batch of rows matching the decisions schema.
        Returns count and duration.
        """
        if not rows:
            return DuckDBWriteResult(num_rows=0, duration_ms=0.0)

        t0 = time.perf_counter()

        self.conn.executemany(
            f"""
            INSERT INTO {DECISIONS_TABLE_NAME} (
                decision_seq,
                evaluated_at_ms, total_duration_ms, experiences_evaluated,
                shown, experience_id,
                url, reasons_json, trace_json, context_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )

        dt_ms = (time.perf_counter() - t0) * 1000.0
        return DuckDBWriteResult(num_rows=len(rows), duration_ms=dt_ms)

    def count_decisions(self, experience_id: str | None = None) -> int:
        """
        Convenience method for sanity checks/tests.
        """
        if experience_id is None:
            res = self.conn.execute(f"SELECT COUNT(*) FROM {DECISIONS_TABLE_NAME}").fetchone()
        else:
            res = self.conn.execute(
                f"SELECT COUNT(*) FROM {DECISIONS_TABLE_NAME} WHERE experience_id = ?",
                [experience_id],
            ).fetchone()
        return int(res[0]) if res else 0
