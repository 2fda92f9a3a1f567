"""Keyphrase text normalization and validation rules."""

from __future__ import annotations


def normalize_keyword(keyword: str | None) -> str:
    """Trim surrounding whitespace from a keyphrase."""
    return (keyword or "").strip()


def normalize_keyword_key(keyword: str | None) -> str:
    """Case-insensitive lookup key for a keyphrase."""
    return normalize_keyword(keyword).lower()


def normalize_category_id(category_id: str | None) -> str:
    return (category_id or "").strip()


def compact_spaces(value: str | None) -> str:
    """Collapse runs of spaces and trim."""
    if not value or not value.strip():
        return ""
    return " ".join(part for part in value.split(" ") if part)


def normalize_for_comparison(value: str | None) -> str:
    """Lower-case, replace every non-alphanumeric character with a space, collapse spaces."""
    if not value or not value.strip():
        return ""
    replaced = "".join(ch.lower() if ch.isalnum() else " " for ch in value)
    return compact_spaces(replaced)


def build_expected_main_keyword(category_display_name: str, location_name: str) -> str:
    """The only phrase allowed as main term for a (category, location) scope."""
    category = compact_spaces(category_display_name)
    location = compact_spaces(location_name)
    return f"{category} {location}".strip()


def is_canonical_main_keyword(keyword: str | None, expected_main_keyword: str) -> bool:
    """Exact (ordinal) equality of the comparison-normalized forms."""
    return normalize_for_comparison(keyword) == normalize_for_comparison(expected_main_keyword)


def keyword_contains_location(keyword: str | None, location_name: str | None) -> bool:
    """Whether the location appears in the keyphrase as whole space-separated tokens.

    Padding both sides with a space keeps "ham" from matching inside
    "birmingham" while still allowing multi-word locations.
    """
    normalized_keyword = normalize_for_comparison(keyword)
    normalized_location = normalize_for_comparison(location_name)
    if not normalized_keyword or not normalized_location:
        return False
    return f" {normalized_location} " in f" {normalized_keyword} "
