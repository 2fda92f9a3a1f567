"""Unit tests for demand series fingerprints."""

from __future__ import annotations

import hashlib
import itertools

from localseo.integrations.dataforseo import MonthlySearch
from localseo.services.keyphrases.fingerprint import build_fingerprint, normalize_fingerprint_key

POINTS = [
    MonthlySearch(2025, 11, 90),
    MonthlySearch(2026, 1, 100),
    MonthlySearch(2025, 12, 110),
]


def test_fingerprint_is_independent_of_point_order() -> None:
    expected = build_fingerprint("2826", "1000", False, POINTS)

    for permutation in itertools.permutations(POINTS):
        assert build_fingerprint("2826", "1000", False, list(permutation)) == expected


def test_fingerprint_hashes_sorted_pipe_joined_series() -> None:
    raw = "united kingdom|english|1|2025-11:90|2025-12:110|2026-01:100"

    assert build_fingerprint(" United Kingdom ", "ENGLISH", True, POINTS) == (
        hashlib.sha256(raw.encode("utf-8")).hexdigest()
    )


def test_fingerprint_depends_on_targeting_and_volumes() -> None:
    base = build_fingerprint("2826", "1000", False, POINTS)

    assert build_fingerprint("2826", "1000", True, POINTS) != base
    assert build_fingerprint("2840", "1000", False, POINTS) != base
    assert build_fingerprint("2826", "1000", False, [*POINTS[:2], MonthlySearch(2025, 12, 111)]) != base


def test_fingerprint_is_lower_case_hex() -> None:
    fingerprint = build_fingerprint("2826", "1000", False, [])

    assert len(fingerprint) == 64
    assert fingerprint == fingerprint.lower()
    int(fingerprint, 16)


def test_normalize_fingerprint_key_trims_and_lowercases() -> None:
    assert normalize_fingerprint_key("  English ") == "english"
    assert normalize_fingerprint_key(None) == ""
