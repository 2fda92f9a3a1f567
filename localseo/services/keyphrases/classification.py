"""Keyword type resolution for a (category, location) scope.

The resolver is a pure function over the full keyword set of one scope. It
pins the main term, groups keywords with data by fingerprint, elects one
representative per multi-member group and marks the other members as its
synonyms. Everything else settles to modifier, except adjacent keywords which
stay adjacent.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from localseo.models.keyword import (
    KEYWORD_TYPE_ADJACENT,
    KEYWORD_TYPE_MAIN_TERM,
    KEYWORD_TYPE_MODIFIER,
    KEYWORD_TYPE_SYNONYM,
)

# Lower rank wins representative election when the main term is not in the group.
REPRESENTATIVE_PRIORITY: dict[str, int] = {
    KEYWORD_TYPE_MODIFIER: 0,
    KEYWORD_TYPE_ADJACENT: 1,
    KEYWORD_TYPE_MAIN_TERM: 2,
    KEYWORD_TYPE_SYNONYM: 3,
}
UNRANKED_PRIORITY = 9


class ClassifiableKeyword(Protocol):
    id: int
    keyword_type: str
    canonical_keyword_id: int | None
    fingerprint: str | None
    no_data: bool


@dataclass(frozen=True, slots=True)
class KeywordClassification:
    """Desired type and canonical link for one keyword."""

    keyword_id: int
    keyword_type: str
    canonical_keyword_id: int | None = None


@dataclass(frozen=True, slots=True)
class _FingerprintGroup:
    representative_id: int
    member_count: int


def representative_rank(keyword_type: str) -> int:
    return REPRESENTATIVE_PRIORITY.get(keyword_type, UNRANKED_PRIORITY)


def find_main_term_id(rows: Iterable[ClassifiableKeyword]) -> int | None:
    """Lowest-id main term, if any."""
    main_ids = [row.id for row in rows if row.keyword_type == KEYWORD_TYPE_MAIN_TERM]
    return min(main_ids) if main_ids else None


def _fingerprint_key(row: ClassifiableKeyword) -> str | None:
    if row.no_data or not row.fingerprint or not row.fingerprint.strip():
        return None
    return row.fingerprint.strip().lower()


def select_representative_id(
    members: Sequence[ClassifiableKeyword],
    main_term_id: int | None,
) -> int:
    """Pick the keyword every other member of a fingerprint group points to."""
    if main_term_id is not None and any(member.id == main_term_id for member in members):
        return main_term_id

    best = min(members, key=lambda member: (representative_rank(member.keyword_type), member.id))
    return best.id


def _build_groups(
    rows: Sequence[ClassifiableKeyword],
    main_term_id: int | None,
) -> dict[str, _FingerprintGroup]:
    members_by_fingerprint: dict[str, list[ClassifiableKeyword]] = {}
    for row in sorted(rows, key=lambda item: item.id):
        key = _fingerprint_key(row)
        if key is not None:
            members_by_fingerprint.setdefault(key, []).append(row)

    return {
        key: _FingerprintGroup(
            representative_id=select_representative_id(members, main_term_id),
            member_count=len(members),
        )
        for key, members in members_by_fingerprint.items()
    }


def resolve_keyword_types(rows: Sequence[ClassifiableKeyword]) -> list[KeywordClassification]:
    """Compute the desired classification of every keyword in the scope, ordered by id."""
    ordered = sorted(rows, key=lambda item: item.id)
    main_term_id = find_main_term_id(ordered)
    groups = _build_groups(ordered, main_term_id)

    resolved: list[KeywordClassification] = []
    for row in ordered:
        if row.id == main_term_id:
            resolved.append(KeywordClassification(row.id, KEYWORD_TYPE_MAIN_TERM))
            continue

        key = _fingerprint_key(row)
        group = groups.get(key) if key is not None else None
        if group is not None and group.member_count > 1 and row.id != group.representative_id:
            resolved.append(
                KeywordClassification(row.id, KEYWORD_TYPE_SYNONYM, group.representative_id)
            )
        elif row.keyword_type == KEYWORD_TYPE_ADJACENT:
            resolved.append(KeywordClassification(row.id, KEYWORD_TYPE_ADJACENT))
        else:
            resolved.append(KeywordClassification(row.id, KEYWORD_TYPE_MODIFIER))

    return resolved


def plan_classification_changes(rows: Sequence[ClassifiableKeyword]) -> list[KeywordClassification]:
    """Only the classifications that differ from the current state.

    Applying the returned patch and planning again yields an empty list.
    """
    current = {row.id: row for row in rows}
    changes: list[KeywordClassification] = []
    for desired in resolve_keyword_types(rows):
        row = current[desired.keyword_id]
        if row.keyword_type == desired.keyword_type and row.canonical_keyword_id == desired.canonical_keyword_id:
            continue
        changes.append(desired)
    return changes
