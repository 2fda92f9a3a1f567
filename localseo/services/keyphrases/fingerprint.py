"""Content fingerprints for keyword demand series.

Two keywords that return byte-identical monthly series for the same
location, language and search-partner targeting share a fingerprint and are
treated as the same search intent by the classification resolver.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from typing import Protocol


class MonthlyVolume(Protocol):
    year: int
    month: int
    search_volume: int


def normalize_fingerprint_key(value: str | None) -> str:
    """Trim and lower-case a location or language key."""
    return (value or "").strip().lower()


def build_fingerprint(
    location_key: str | None,
    language_key: str | None,
    search_partners: bool,
    monthly_points: Iterable[MonthlyVolume],
) -> str:
    """Return the lower-case SHA-256 hex digest identifying a demand series.

    Points are sorted by (year, month) first so their input order never
    changes the result.
    """
    parts = [
        normalize_fingerprint_key(location_key),
        normalize_fingerprint_key(language_key),
        "1" if search_partners else "0",
    ]
    ordered = sorted(monthly_points, key=lambda point: (point.year, point.month))
    parts.extend(f"{point.year}-{point.month:02d}:{point.search_volume}" for point in ordered)

    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
