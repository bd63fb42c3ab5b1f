from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

DAY_MS = 24 * 60 * 60 * 1000
WEEK_MS = 7 * DAY_MS
# impressions older than this are pruned on every write
RETENTION_MS = WEEK_MS


@dataclass(slots=True)
class FrequencyRecord:
    """
    Per-experience impression log. len(impressions) <= count always holds:
    count is lifetime, impressions are pruned to the retention horizon.
    """

    count: int = 0
    last_impression: int = 0
    impressions: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        # persisted wire format
        return {
            "count": self.count,
            "lastImpression": self.last_impression,
            "impressions": list(self.impressions),
        }

    @classmethod
    def from_stored(cls, raw: Any) -> FrequencyRecord:
        """Parses a stored record; anything malformed reads as an empty record."""
        if not isinstance(raw, Mapping):
            return cls()
        try:
            count = int(raw.get("count", 0))
            last = int(raw.get("lastImpression", 0))
            impressions = [int(ts) for ts in raw.get("impressions") or []]
        except (TypeError, ValueError):
            return cls()
        if count < 0:
            return cls()
        return cls(count=count, last_impression=last, impressions=impressions[-count:] if count else [])


@dataclass(frozen=True)
class FrequencySettings:
    enabled: bool = True
    namespace: str = "experiences:frequency"
