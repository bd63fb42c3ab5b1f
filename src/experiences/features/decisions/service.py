from __future__ import annotations

import time
from collections import deque
from collections.abc import Iterable
from typing import Any, Protocol

from experiences.features.context.types import Context

from .types import Decision, DecisionMetadata, TraceStep


class EventsLike(Protocol):
    def emit(self, event_name: str, payload: Any = None) -> None: ...


class DecisionRecorder:
    """
    Assembles immutable Decisions and keeps a bounded history of them.
    The oldest decisions are dropped once history_limit is reached.
    """

    def __init__(self, *, history_limit: int = 1000, events: EventsLike | None = None) -> None:
        if history_limit <= 0:
            raise ValueError("history_limit must be > 0")
        self._history: deque[Decision] = deque(maxlen=history_limit)
        self._events = events
        self._seq = 0

    @property
    def history_limit(self) -> int:
        return int(self._history.maxlen or 0)

    @property
    def total_recorded(self) -> int:
        return self._seq

    @staticmethod
    def assemble(
        *,
        show: bool,
        experience_id: str | None,
        reasons: Iterable[str],
        trace: Iterable[TraceStep],
        context: Context,
        evaluated_at: int,
        started_at: float,
        experiences_evaluated: int,
    ) -> Decision:
        """
        started_at is a time.perf_counter() reading taken when evaluation began.
        """
        return Decision(
            show=show,
            experience_id=experience_id,
            reasons=tuple(reasons),
            trace=tuple(trace),
            context=context,
            metadata=DecisionMetadata(
                evaluated_at=evaluated_at,
                total_duration=(time.perf_counter() - started_at) * 1000.0,
                experiences_evaluated=experiences_evaluated,
            ),
        )

    def record(self, decision: Decision) -> Decision:
        self._history.append(decision)
        self._seq += 1
        if self._events is not None:
            self._events.emit(
                "experiences:decision-recorded", {"seq": self._seq, "decision": decision}
            )
        return decision

    def history(self) -> list[Decision]:
        return list(self._history)

    def clear(self) -> None:
        self._history.clear()
