from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PageVisitsConfig:
    enabled: bool = True
    respect_dnt: bool = True
    session_key: str = "page_visits:session"
    total_key: str = "page_visits:total"
    # expiration horizon for the lifetime counter; None keeps it forever
    ttl_s: float | None = None
    auto_increment: bool = True


@dataclass(slots=True)
class VisitTotals:
    count: int = 0
    first: int | None = None
    last: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {"count": self.count, "first": self.first, "last": self.last}

    @classmethod
    def from_stored(cls, raw: Any) -> VisitTotals:
        if not isinstance(raw, dict):
            return cls()
        try:
            count = max(0, int(raw.get("count", 0)))
        except (TypeError, ValueError):
            return cls()
        first = raw.get("first")
        last = raw.get("last")
        return cls(
            count=count,
            first=int(first) if isinstance(first, (int, float)) else None,
            last=int(last) if isinstance(last, (int, float)) else None,
        )


@dataclass(frozen=True, slots=True)
class PageVisitsState:
    session_count: int
    total_count: int
    first_visit: bool
    first_visit_time: int | None
    last_visit_time: int | None
    disabled_reason: str | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "session_count": self.session_count,
            "total_count": self.total_count,
            "first_visit": self.first_visit,
            "first_visit_time": self.first_visit_time,
            "last_visit_time": self.last_visit_time,
            "disabled_reason": self.disabled_reason,
        }
