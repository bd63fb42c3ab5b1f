from __future__ import annotations

import json
from typing import Any

from experiences.core.logging import get_logger
from experiences.features.decisions.types import Decision
from experiences.features.persistence.duckdb_adapter import DuckDBAdapter


class DecisionAuditLog:
    """
    Buffered decision sink + flush policy.
    - Hot: buffer in memory
    - Cold: DuckDB ``decisions`` table
    """

    def __init__(
        self,
        *,
        adapter: DuckDBAdapter,
        every_n_decisions: int,
        or_every_seconds: float,
    ) -> None:
        self.adapter = adapter
        self.every_n_decisions = int(every_n_decisions)
        self.or_every_seconds = float(or_every_seconds)

        self._buf: list[tuple[int, Decision]] = []
        self._logger = get_logger(__name__)

        self._is_open = False
        self._periodic_proc_started = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def pending(self) -> int:
        return len(self._buf)

    def open(self) -> None:
        if self._is_open:
            return
        self.adapter.open()
        self._is_open = True

    def on_decision_recorded(self, payload: dict[str, Any]) -> None:
        """Handler for experiences:decision-recorded."""
        self.emit(int(payload["seq"]), payload["decision"])

    def emit(self, seq: int, decision: Decision) -> None:
        if not self._is_open:
            raise RuntimeError("DecisionAuditLog not open. Call open() first.")

        self._buf.append((seq, decision))

        if self.every_n_decisions > 0 and len(self._buf) >= self.every_n_decisions:
            self.flush(reason="count")

    def flush(self, *, reason: str) -> None:
        if not self._buf or not self._is_open:
            return

        rows = [self._decision_to_row(seq, d) for seq, d in self._buf]
        self._buf.clear()

        result = self.adapter.write_decisions(rows)

        self._logger.info(
            "flush",
            extra={
                "feature": "audit",
                "event": "flush",
                "reason": reason,
                "num_rows": result.num_rows,
                "duration_ms": result.duration_ms,
            },
        )

    def close(self) -> None:
        if not self._is_open:
            return
        # final flush; the adapter is owned by the caller
        self.flush(reason="shutdown")
        self._is_open = False

    def start_periodic_flush(self, env) -> None:
        """
        Start a SimPy process that flushes every `or_every_seconds` of clock time.
        """
        if self._periodic_proc_started or self.or_every_seconds <= 0:
            return
        self._periodic_proc_started = True
        env.process(self._periodic_flush_proc(env))

    def _periodic_flush_proc(self, env):
        while self._is_open:
            yield env.timeout(self.or_every_seconds)
            self.flush(reason="timer")
        self._periodic_proc_started = False

    @staticmethod
    def _decision_to_row(seq: int, d: Decision) -> tuple:
        as_dict = d.as_dict()
        return (
            seq,
            d.metadata.evaluated_at,
            float(d.metadata.total_duration),
            d.metadata.experiences_evaluated,
            d.show,
            d.experience_id,
            d.context.url,
            json.dumps(as_dict["reasons"], separators=(",", ":")),
            json.dumps(as_dict["trace"], separators=(",", ":"), default=str),
            json.dumps(as_dict["context"], separators=(",", ":"), default=str),
        )
