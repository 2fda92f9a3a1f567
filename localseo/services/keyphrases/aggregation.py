"""Presentation ordering and weighted demand aggregation for a keyphrase scope."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import TypeVar

from localseo.models.keyword import (
    KEYWORD_TYPE_ADJACENT,
    KEYWORD_TYPE_MAIN_TERM,
    KEYWORD_TYPE_MODIFIER,
)
from localseo.schemas.keyphrase import KeyphraseRow, WeightedSearchVolumePoint
from localseo.services.keyphrases.fingerprint import MonthlyVolume

MONTHS_SHOWN = 12

# Synonyms and unknown types carry no weight so a series is never double-counted.
DEMAND_WEIGHTS: dict[str, Decimal] = {
    KEYWORD_TYPE_MAIN_TERM: Decimal("1.0"),
    KEYWORD_TYPE_MODIFIER: Decimal("0.7"),
    KEYWORD_TYPE_ADJACENT: Decimal("0.7"),
}

_PointT = TypeVar("_PointT", bound=MonthlyVolume)


def latest_points(points: Iterable[_PointT], limit: int = MONTHS_SHOWN) -> list[_PointT]:
    """The `limit` most recent points, ascending by (year, month)."""
    newest_first = sorted(points, key=lambda point: (point.year, point.month), reverse=True)
    return sorted(newest_first[:limit], key=lambda point: (point.year, point.month))


def data_as_of(points: Sequence[MonthlyVolume]) -> date | None:
    """First day of the latest month in the series."""
    if not points:
        return None
    latest = max(points, key=lambda point: (point.year, point.month))
    return date(latest.year, latest.month, 1)


def has_data(row: KeyphraseRow) -> bool:
    return not row.no_data and bool(row.last_12_months)


def latest_volume(row: KeyphraseRow) -> int:
    if not row.last_12_months:
        return 0
    latest = max(row.last_12_months, key=lambda point: (point.year, point.month))
    return latest.search_volume


def keyphrase_sort_key(row: KeyphraseRow) -> tuple[int, int, int, str]:
    """Main term, then rows with data, then latest volume descending, then keyword."""
    return (
        0 if row.keyword_type == KEYWORD_TYPE_MAIN_TERM else 1,
        0 if has_data(row) else 1,
        -latest_volume(row),
        row.keyword.casefold(),
    )


def sort_keyphrase_rows(rows: Iterable[KeyphraseRow]) -> list[KeyphraseRow]:
    return sorted(rows, key=keyphrase_sort_key)


def weighted_monthly_totals(
    rows: Iterable[KeyphraseRow],
    months: int = MONTHS_SHOWN,
) -> list[WeightedSearchVolumePoint]:
    """Blend the scope's series into one weighted monthly demand curve.

    Each (year, month) sums `search_volume * weight` over rows with data that
    are not synonyms. Totals are rounded to 2 places, halves away from zero,
    and only the most recent `months` months are returned, ascending.
    """
    totals: dict[tuple[int, int], Decimal] = {}
    for row in rows:
        weight = DEMAND_WEIGHTS.get(row.keyword_type, Decimal(0))
        if row.no_data or weight <= 0:
            continue
        for point in row.last_12_months:
            key = (point.year, point.month)
            totals[key] = totals.get(key, Decimal(0)) + point.search_volume * weight

    recent = sorted(totals, reverse=True)[:months]
    return [
        WeightedSearchVolumePoint(
            year=year,
            month=month,
            weighted_search_volume=totals[(year, month)].quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            ),
        )
        for year, month in sorted(recent)
    ]
