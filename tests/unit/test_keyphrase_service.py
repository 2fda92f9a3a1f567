"""Tests for the category/location keyphrase service."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import CATEGORY_ID, LOCATION_ID, OTHER_CATEGORY_ID, OTHER_LOCATION_ID
from localseo.core.exceptions import (
    APIKeyMissingError,
    CategoryNotFoundError,
    KeywordValidationError,
    LocationNotFoundError,
    ValidationError,
)
from localseo.models import BusinessCategory
from localseo.services.keyphrases.types import RefreshSummary


@pytest.mark.asyncio
async def test_add_keyword_inserts_and_refreshes(
    keyphrase_service, volume_provider, load_keywords, load_points
) -> None:
    volume_provider.set_volume("Plumbers Bristol", {(2025, 12): 90, (2026, 1): 110})

    summary = await keyphrase_service.add_keyword_and_refresh(
        LOCATION_ID, f"  {CATEGORY_ID} ", "  Plumbers Bristol ", "main_term"
    )

    assert summary == RefreshSummary(requested=1, refreshed=1, skipped=0, errored=0)
    [row] = (await load_keywords()).values()
    assert row.keyword == "Plumbers Bristol"
    assert row.keyword_normalized == "plumbers bristol"
    assert row.keyword_type == "main_term"
    assert row.fingerprint is not None
    assert await load_points(row.id) == [(2025, 12, 90), (2026, 1, 110)]


@pytest.mark.asyncio
async def test_add_keyword_refresh_ignores_cooldown_and_records_missing_result(
    keyphrase_service, load_keywords
) -> None:
    summary = await keyphrase_service.add_keyword_and_refresh(LOCATION_ID, CATEGORY_ID, "bristol plumber")

    assert summary.errored == 1
    [row] = (await load_keywords()).values()
    assert row.keyword_type == "modifier"
    assert row.no_data_reason == "unknown"


@pytest.mark.asyncio
async def test_added_keywords_with_identical_series_collapse_to_synonyms(
    keyphrase_service, volume_provider, load_keywords
) -> None:
    volume_provider.set_volume("plumbers near me bristol", {(2026, 1): 100})
    volume_provider.set_volume("emergency plumber bristol", {(2026, 1): 100})

    await keyphrase_service.add_keyword_and_refresh(LOCATION_ID, CATEGORY_ID, "plumbers near me bristol")
    await keyphrase_service.add_keyword_and_refresh(LOCATION_ID, CATEGORY_ID, "emergency plumber bristol")

    rows = {row.keyword: row for row in (await load_keywords()).values()}
    representative = rows["plumbers near me bristol"]
    synonym = rows["emergency plumber bristol"]
    assert representative.keyword_type == "modifier"
    assert synonym.keyword_type == "synonym"
    assert synonym.canonical_keyword_id == representative.id

    view = await keyphrase_service.get_keyphrases(LOCATION_ID, CATEGORY_ID)
    assert [(point.year, point.month, point.weighted_search_volume) for point in view.weighted_total_last_12_months] == [
        (2026, 1, Decimal("70.00"))
    ]


@pytest.mark.parametrize(
    ("keyword", "keyword_type", "message"),
    [
        ("   ", "modifier", "Keyword is required."),
        ("plumber bristol", "synonym", "Keyword type is invalid."),
        ("plumbers near me", "modifier", 'Please include the location "Bristol" in the keyphrase.'),
        (
            "Best Plumbers Bristol",
            "main_term",
            'Main Term is only allowed when the keyphrase exactly matches "Plumbers Bristol".',
        ),
    ],
)
@pytest.mark.asyncio
async def test_add_keyword_validation(
    keyphrase_service, volume_provider, load_keywords, keyword, keyword_type, message
) -> None:
    with pytest.raises(KeywordValidationError) as exc_info:
        await keyphrase_service.add_keyword_and_refresh(LOCATION_ID, CATEGORY_ID, keyword, keyword_type)

    assert exc_info.value.message == message
    assert await load_keywords() == {}
    assert volume_provider.calls == []


@pytest.mark.asyncio
async def test_add_keyword_rejects_case_insensitive_duplicate(keyphrase_service, insert_keyword) -> None:
    await insert_keyword("bristol plumber")

    with pytest.raises(KeywordValidationError, match="already exists"):
        await keyphrase_service.add_keyword_and_refresh(LOCATION_ID, CATEGORY_ID, "  Bristol Plumber")


@pytest.mark.asyncio
async def test_add_keyword_requires_known_scope(keyphrase_service) -> None:
    with pytest.raises(ValidationError, match="Location and category are required."):
        await keyphrase_service.add_keyword_and_refresh(0, CATEGORY_ID, "plumber bristol")
    with pytest.raises(LocationNotFoundError):
        await keyphrase_service.add_keyword_and_refresh(999, CATEGORY_ID, "plumber bristol")
    with pytest.raises(CategoryNotFoundError):
        await keyphrase_service.add_keyword_and_refresh(LOCATION_ID, "gcid:unknown", "plumber bristol")


@pytest.mark.asyncio
async def test_add_keyword_without_provider_credentials_writes_nothing(
    keyphrase_service, pipeline, volume_provider, load_keywords
) -> None:
    def missing_credentials():
        raise APIKeyMissingError("DataForSEO")

    pipeline.client_factory = missing_credentials

    with pytest.raises(APIKeyMissingError):
        await keyphrase_service.add_keyword_and_refresh(LOCATION_ID, CATEGORY_ID, "plumber bristol")

    assert await load_keywords() == {}
    assert volume_provider.calls == []


@pytest.mark.asyncio
async def test_adding_main_term_demotes_previous_main_term(
    keyphrase_service, insert_keyword, load_keywords
) -> None:
    previous_id = await insert_keyword("plumbers-bristol", "main_term")

    await keyphrase_service.add_keyword_and_refresh(LOCATION_ID, CATEGORY_ID, "Plumbers Bristol", "main_term")

    rows = await load_keywords()
    main_terms = [row for row in rows.values() if row.keyword_type == "main_term"]
    assert [row.keyword for row in main_terms] == ["Plumbers Bristol"]
    assert rows[previous_id].keyword_type == "modifier"


@pytest.mark.asyncio
async def test_set_main_term_promotes_canonical_keyword(
    keyphrase_service, insert_keyword, load_keywords
) -> None:
    previous_id = await insert_keyword("plumbers-bristol", "main_term")
    keyword_id = await insert_keyword("plumbers bristol")

    assert await keyphrase_service.set_main_term(LOCATION_ID, CATEGORY_ID, keyword_id) is True

    rows = await load_keywords()
    assert rows[keyword_id].keyword_type == "main_term"
    assert rows[previous_id].keyword_type == "modifier"


@pytest.mark.asyncio
async def test_set_main_term_rejects_non_canonical_keyword(
    keyphrase_service, insert_keyword, load_keywords
) -> None:
    keyword_id = await insert_keyword("plumbers in bristol")

    with pytest.raises(KeywordValidationError) as exc_info:
        await keyphrase_service.set_main_term(LOCATION_ID, CATEGORY_ID, keyword_id)

    assert exc_info.value.message == (
        'Only "Plumbers Bristol" can be set as Main Term for this category and location.'
    )
    assert (await load_keywords())[keyword_id].keyword_type == "modifier"


@pytest.mark.asyncio
async def test_set_main_term_returns_false_when_keyword_is_not_in_scope(
    keyphrase_service, insert_keyword
) -> None:
    keyword_id = await insert_keyword("plumbers bath", location_id=OTHER_LOCATION_ID)

    assert await keyphrase_service.set_main_term(LOCATION_ID, CATEGORY_ID, keyword_id) is False
    assert await keyphrase_service.set_main_term(LOCATION_ID, CATEGORY_ID, 999) is False
    assert await keyphrase_service.set_main_term(LOCATION_ID, " ", keyword_id) is False


@pytest.mark.asyncio
async def test_set_keyword_type_rules(keyphrase_service, insert_keyword, load_keywords) -> None:
    main_id = await insert_keyword("plumbers bristol", "main_term")
    keyword_id = await insert_keyword("drain unblocking bristol")

    assert await keyphrase_service.set_keyword_type(LOCATION_ID, CATEGORY_ID, keyword_id, "adjacent") is True
    assert (await load_keywords())[keyword_id].keyword_type == "adjacent"

    with pytest.raises(KeywordValidationError, match="Only Modifier or Adjacent can be manually set."):
        await keyphrase_service.set_keyword_type(LOCATION_ID, CATEGORY_ID, keyword_id, "synonym")
    with pytest.raises(KeywordValidationError, match="Main term cannot be changed directly"):
        await keyphrase_service.set_keyword_type(LOCATION_ID, CATEGORY_ID, main_id, "modifier")

    assert await keyphrase_service.set_keyword_type(LOCATION_ID, CATEGORY_ID, 999, "modifier") is False


@pytest.mark.asyncio
async def test_delete_keyword_removes_series_and_reelects_representative(
    keyphrase_service, insert_keyword, load_keywords, load_points
) -> None:
    representative_id = await insert_keyword(
        "plumbers near me bristol", fingerprint="f" * 64, months={(2026, 1): 100}
    )
    synonym_id = await insert_keyword(
        "emergency plumber bristol",
        "synonym",
        fingerprint="f" * 64,
        canonical_keyword_id=representative_id,
        months={(2026, 1): 100},
    )

    assert await keyphrase_service.delete_keyword(LOCATION_ID, CATEGORY_ID, representative_id) is True

    rows = await load_keywords()
    assert representative_id not in rows
    assert (rows[synonym_id].keyword_type, rows[synonym_id].canonical_keyword_id) == ("modifier", None)
    assert await load_points(representative_id) == []
    assert await keyphrase_service.delete_keyword(LOCATION_ID, CATEGORY_ID, representative_id) is False


@pytest.mark.asyncio
async def test_get_keyphrases_builds_sorted_view(keyphrase_service, insert_keyword) -> None:
    main_id = await insert_keyword("plumbers bristol", "main_term")
    modifier_id = await insert_keyword(
        "plumbers near me bristol",
        months={(2025, 12): 80, (2026, 1): 100},
        last_attempted_at=datetime.now(timezone.utc) - timedelta(days=10),
    )
    synonym_id = await insert_keyword(
        "emergency plumber bristol",
        "synonym",
        canonical_keyword_id=modifier_id,
        months={(2026, 1): 100},
    )
    no_data_id = await insert_keyword(
        "drain unblocking bristol",
        "adjacent",
        months={(2026, 1): 500},
        no_data=True,
        no_data_reason="api_error",
    )

    view = await keyphrase_service.get_keyphrases(LOCATION_ID, CATEGORY_ID)

    assert view.location_name == "Bristol"
    assert view.county_name == "City of Bristol"
    assert view.category_display_name == "Plumbers"
    assert view.expected_main_keyword == "Plumbers Bristol"
    assert view.refresh_cooldown_days == 30
    assert [row.id for row in view.rows] == [main_id, synonym_id, modifier_id, no_data_id]

    rows = {row.id: row for row in view.rows}
    assert rows[synonym_id].synonym_of_keyword == "plumbers near me bristol"
    assert rows[modifier_id].synonym_of_keyword is None
    assert rows[modifier_id].data_as_of == date(2026, 1, 1)
    assert [point.search_volume for point in rows[modifier_id].last_12_months] == [80, 100]
    assert rows[modifier_id].is_refresh_eligible is False
    assert rows[main_id].is_refresh_eligible is True
    assert rows[main_id].data_as_of is None

    assert [
        (point.year, point.month, point.weighted_search_volume) for point in view.weighted_total_last_12_months
    ] == [(2025, 12, Decimal("56.00")), (2026, 1, Decimal("70.00"))]


@pytest.mark.asyncio
async def test_get_keyphrases_requires_existing_scope(keyphrase_service) -> None:
    with pytest.raises(LocationNotFoundError):
        await keyphrase_service.get_keyphrases(999, CATEGORY_ID)
    with pytest.raises(CategoryNotFoundError):
        await keyphrase_service.get_keyphrases(LOCATION_ID, "gcid:unknown")


@pytest.mark.asyncio
async def test_get_location_categories_lists_active_categories_with_keyphrases(
    keyphrase_service, session_factory, insert_keyword
) -> None:
    async with session_factory() as session:
        async with session.begin():
            session.add(BusinessCategory(category_id="gcid:retired", display_name="Retired", status="Inactive"))
    await insert_keyword("plumbers bristol", "main_term")
    await insert_keyword("plumber bristol")
    await insert_keyword("electricians bristol", category_id=OTHER_CATEGORY_ID)
    await insert_keyword("retired bristol", category_id="gcid:retired")
    await insert_keyword("plumbers bath", location_id=OTHER_LOCATION_ID)

    listing = await keyphrase_service.get_location_categories(LOCATION_ID)

    assert listing.location_name == "Bristol"
    assert listing.county_name == "City of Bristol"
    assert [(row.category_id, row.keyword_count, row.main_term_count) for row in listing.rows] == [
        (OTHER_CATEGORY_ID, 1, 0),
        (CATEGORY_ID, 2, 1),
    ]
    assert listing.rows[1].category_display_name == "Plumbers"
    assert listing.rows[1].last_keyword_updated_at is not None


@pytest.mark.asyncio
async def test_get_location_categories_validation(keyphrase_service) -> None:
    with pytest.raises(ValidationError, match="Location is required."):
        await keyphrase_service.get_location_categories(0)
    with pytest.raises(LocationNotFoundError):
        await keyphrase_service.get_location_categories(999)


@pytest.mark.asyncio
async def test_get_recent_category_locations(keyphrase_service, insert_keyword) -> None:
    await insert_keyword("plumbers bristol", updated_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
    await insert_keyword(
        "plumbers bath",
        location_id=OTHER_LOCATION_ID,
        updated_at=datetime(2026, 2, 1, tzinfo=timezone.utc),
    )
    await insert_keyword(
        "electricians bath",
        location_id=OTHER_LOCATION_ID,
        category_id=OTHER_CATEGORY_ID,
        updated_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )

    recent = await keyphrase_service.get_recent_category_locations(CATEGORY_ID)

    assert [(row.location_id, row.location_name, row.county_name) for row in recent] == [
        (OTHER_LOCATION_ID, "Bath", "Somerset"),
        (LOCATION_ID, "Bristol", "City of Bristol"),
    ]
    assert all(row.keyword_count == 1 for row in recent)

    excluded = await keyphrase_service.get_recent_category_locations(CATEGORY_ID, exclude_location_id=OTHER_LOCATION_ID)
    assert [row.location_id for row in excluded] == [LOCATION_ID]

    clamped = await keyphrase_service.get_recent_category_locations(CATEGORY_ID, take=0)
    assert [row.location_id for row in clamped] == [OTHER_LOCATION_ID]

    with pytest.raises(ValidationError, match="Category is required."):
        await keyphrase_service.get_recent_category_locations("  ")
