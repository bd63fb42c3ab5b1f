from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from experiences.features.context.types import Context


@dataclass(frozen=True, slots=True)
class TraceStep:
    """
    One explainability record. Never drives control flow.
    """

    step: str
    timestamp: int
    duration: float
    passed: bool
    input: Any = None
    output: Any = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "timestamp": self.timestamp,
            "duration": self.duration,
            "input": _jsonable(self.input),
            "output": _jsonable(self.output),
            "passed": self.passed,
        }


@dataclass(frozen=True, slots=True)
class DecisionMetadata:
    evaluated_at: int
    total_duration: float
    experiences_evaluated: int


@dataclass(frozen=True, slots=True)
class Decision:
    show: bool
    experience_id: str | None
    reasons: tuple[str, ...]
    trace: tuple[TraceStep, ...]
    context: Context
    metadata: DecisionMetadata

    def as_dict(self) -> dict[str, Any]:
        return {
            "show": self.show,
            "experience_id": self.experience_id,
            "reasons": list(self.reasons),
            "trace": [t.as_dict() for t in self.trace],
            "context": self.context.as_dict(),
            "metadata": {
                "evaluated_at": self.metadata.evaluated_at,
                "total_duration": self.metadata.total_duration,
                "experiences_evaluated": self.metadata.experiences_evaluated,
            },
        }


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    matched: bool
    reasons: tuple[str, ...] = ()
    trace: tuple[TraceStep, ...] = field(default_factory=tuple)


def _jsonable(value: Any) -> Any:
    # trace inputs may carry compiled patterns or callables
    if value is None or isinstance(value, str | int | float | bool):
        return value
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [_jsonable(v) for v in value]
    if hasattr(value, "pattern"):
        return value.pattern
    if hasattr(value, "as_dict"):
        return value.as_dict()
    if callable(value):
        return getattr(value, "__name__", repr(value))
    return repr(value)
