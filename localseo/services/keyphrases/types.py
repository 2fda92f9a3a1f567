"""Domain types shared by the keyphrase services."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class RefreshSummary:
    """Outcome counts of one refresh operation."""

    requested: int = 0
    refreshed: int = 0
    skipped: int = 0
    errored: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class RefreshCandidate:
    """Keyword selected for a refresh, detached from the session that loaded it."""

    keyword_id: int
    keyword: str
    last_attempted_at: datetime | None = None
