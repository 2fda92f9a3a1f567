"""Unit tests for keyphrase view ordering and weighted demand aggregation."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from localseo.schemas.keyphrase import KeyphraseRow, SearchVolumePoint
from localseo.services.keyphrases.aggregation import (
    data_as_of,
    latest_points,
    sort_keyphrase_rows,
    weighted_monthly_totals,
)


def _row(
    keyword_id: int,
    keyword: str,
    keyword_type: str = "modifier",
    months: dict[tuple[int, int], int] | None = None,
    *,
    no_data: bool = False,
) -> KeyphraseRow:
    return KeyphraseRow(
        id=keyword_id,
        keyword=keyword,
        keyword_type=keyword_type,
        no_data=no_data,
        last_12_months=[
            SearchVolumePoint(year=year, month=month, search_volume=volume)
            for (year, month), volume in sorted((months or {}).items())
        ],
    )


def _totals(rows: list[KeyphraseRow]) -> dict[tuple[int, int], Decimal]:
    return {
        (point.year, point.month): point.weighted_search_volume
        for point in weighted_monthly_totals(rows)
    }


def test_synonym_is_not_double_counted() -> None:
    rows = [
        _row(1, "plumbers near me", "modifier", {(2026, 1): 100}),
        _row(2, "emergency plumber", "synonym", {(2026, 1): 100}),
    ]

    assert _totals(rows) == {(2026, 1): Decimal("70.00")}


def test_main_term_weighs_full_and_no_data_is_excluded() -> None:
    rows = [
        _row(1, "plumbers bristol", "main_term", {(2026, 1): 200, (2026, 2): 210}),
        _row(2, "bristol plumber", "modifier", {(2026, 1): 50}),
        _row(3, "drain unblocking bristol", "adjacent", {(2026, 2): 10}),
        _row(4, "cheap plumber bristol", "modifier", {(2026, 1): 1000}, no_data=True),
    ]

    assert _totals(rows) == {
        (2026, 1): Decimal("235.00"),
        (2026, 2): Decimal("217.00"),
    }


def test_weighted_totals_keep_the_most_recent_twelve_months_ascending() -> None:
    months = {(2024 + (index // 12), index % 12 + 1): 10 for index in range(14)}
    rows = [_row(1, "plumbers bristol", "main_term", months)]

    points = weighted_monthly_totals(rows)

    assert len(points) == 12
    assert (points[0].year, points[0].month) == (2024, 3)
    assert (points[-1].year, points[-1].month) == (2025, 2)
    assert all(point.weighted_search_volume == Decimal("10.00") for point in points)


def test_weighted_totals_are_quantized_to_two_places() -> None:
    rows = [_row(1, "plumber bristol", "modifier", {(2026, 1): 3})]

    [point] = weighted_monthly_totals(rows)

    assert point.weighted_search_volume == Decimal("2.10")
    assert str(point.weighted_search_volume) == "2.10"


def test_rows_sort_main_term_then_data_then_volume_then_keyword() -> None:
    rows = [
        _row(1, "b plumber bristol", "modifier", {(2026, 1): 10}),
        _row(2, "plumber bristol no data", "modifier", {(2026, 1): 999}, no_data=True),
        _row(3, "A plumber bristol", "modifier", {(2026, 1): 10}),
        _row(4, "plumbers bristol", "main_term"),
        _row(5, "big plumber bristol", "adjacent", {(2025, 12): 5, (2026, 1): 40}),
        _row(6, "empty plumber bristol", "modifier"),
    ]

    assert [row.id for row in sort_keyphrase_rows(rows)] == [4, 5, 3, 1, 2, 6]


def test_latest_points_and_data_as_of() -> None:
    points = [
        SearchVolumePoint(year=2025, month=month, search_volume=month) for month in range(1, 13)
    ] + [SearchVolumePoint(year=2026, month=1, search_volume=13)]

    recent = latest_points(points)

    assert [(point.year, point.month) for point in recent][:2] == [(2025, 2), (2025, 3)]
    assert len(recent) == 12
    assert data_as_of(recent) == date(2026, 1, 1)
    assert data_as_of([]) is None
