"""Category/location keyphrase lifecycle service."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from localseo.config import Settings, settings as default_settings
from localseo.core.database import async_session_maker
from localseo.core.exceptions import (
    CategoryNotFoundError,
    KeywordValidationError,
    LocationNotFoundError,
    ValidationError,
)
from localseo.models.keyword import (
    KEYWORD_TYPE_ADJACENT,
    KEYWORD_TYPE_MAIN_TERM,
    KEYWORD_TYPE_MODIFIER,
    KEYWORD_TYPE_SYNONYM,
    CategoryLocationKeyword,
)
from localseo.models.location import BusinessCategory, Town
from localseo.repositories.keyphrase_repository import KeyphraseRepository
from localseo.schemas.keyphrase import (
    CategoryKeyphrasesView,
    KeyphraseRow,
    LocationCategoryList,
    LocationCategoryRow,
    RecentCategoryLocation,
    SearchVolumePoint,
)
from localseo.services.keyphrases.aggregation import (
    data_as_of,
    latest_points,
    sort_keyphrase_rows,
    weighted_monthly_totals,
)
from localseo.services.keyphrases.policy import RefreshPolicy, load_refresh_policy
from localseo.services.keyphrases.refresh import KeyphraseRefreshPipeline, SessionFactory
from localseo.services.keyphrases.text import (
    build_expected_main_keyword,
    is_canonical_main_keyword,
    keyword_contains_location,
    normalize_category_id,
    normalize_keyword,
    normalize_keyword_key,
)
from localseo.services.keyphrases.types import RefreshSummary

logger = logging.getLogger(__name__)

CREATABLE_KEYWORD_TYPES = (KEYWORD_TYPE_MAIN_TERM, KEYWORD_TYPE_MODIFIER, KEYWORD_TYPE_ADJACENT)
MANUAL_KEYWORD_TYPES = (KEYWORD_TYPE_MODIFIER, KEYWORD_TYPE_ADJACENT)
RECENT_LOCATIONS_MIN = 1
RECENT_LOCATIONS_MAX = 50


class CategoryLocationKeywordService:
    """Add, refresh, classify and present the keyphrases of a (category, location) scope.

    Every mutation runs as one transaction that ends by re-converging the
    scope's classification, so readers never observe a half-classified scope.
    """

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        pipeline: KeyphraseRefreshPipeline | None = None,
        config: Settings | None = None,
        policy: RefreshPolicy | None = None,
    ) -> None:
        self.session_factory = session_factory or async_session_maker
        self.config = config or default_settings
        self.pipeline = pipeline or KeyphraseRefreshPipeline(
            session_factory=self.session_factory,
            config=self.config,
        )
        self.policy = policy

    # Reads

    async def get_location_categories(self, location_id: int) -> LocationCategoryList:
        if location_id <= 0:
            raise ValidationError("Location is required.")

        async with self.session_factory() as session:
            repository = KeyphraseRepository(session)
            town = await repository.get_town(location_id)
            if town is None:
                raise LocationNotFoundError(location_id)
            rows = await repository.list_location_categories(location_id)

        return LocationCategoryList(
            location_id=town.town_id,
            location_name=town.name,
            county_name=town.county.name,
            rows=[LocationCategoryRow(**row) for row in rows],
        )

    async def get_recent_category_locations(
        self,
        category_id: str,
        exclude_location_id: int = 0,
        take: int = 10,
    ) -> list[RecentCategoryLocation]:
        normalized_category_id = normalize_category_id(category_id)
        if not normalized_category_id:
            raise ValidationError("Category is required.")

        take = max(RECENT_LOCATIONS_MIN, min(RECENT_LOCATIONS_MAX, take))
        async with self.session_factory() as session:
            rows = await KeyphraseRepository(session).list_recent_category_locations(
                normalized_category_id,
                exclude_location_id,
                take,
            )
        return [RecentCategoryLocation(**row) for row in rows]

    async def get_keyphrases(self, location_id: int, category_id: str) -> CategoryKeyphrasesView:
        """Sorted keyphrase rows of a scope and its weighted 12-month demand curve."""
        normalized_category_id = self._require_scope(location_id, category_id)
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            repository = KeyphraseRepository(session)
            policy = await self._resolve_policy(session)
            town, category = await self._load_scope_context(
                repository,
                location_id,
                normalized_category_id,
            )
            keywords = await repository.list_scope_keywords(normalized_category_id, location_id)
            points_by_keyword = await repository.list_monthly_points([row.id for row in keywords])

        keyword_by_id = {row.id: row.keyword for row in keywords}
        rows: list[KeyphraseRow] = []
        for keyword in keywords:
            points = latest_points(points_by_keyword.get(keyword.id, []))
            synonym_of = None
            if keyword.keyword_type == KEYWORD_TYPE_SYNONYM and keyword.canonical_keyword_id is not None:
                synonym_of = keyword_by_id.get(keyword.canonical_keyword_id)

            rows.append(
                KeyphraseRow(
                    id=keyword.id,
                    keyword=keyword.keyword,
                    keyword_type=keyword.keyword_type,
                    canonical_keyword_id=keyword.canonical_keyword_id,
                    synonym_of_keyword=synonym_of,
                    avg_search_volume=keyword.avg_search_volume,
                    cpc=keyword.cpc,
                    competition=keyword.competition,
                    competition_index=keyword.competition_index,
                    low_top_of_page_bid=keyword.low_top_of_page_bid,
                    high_top_of_page_bid=keyword.high_top_of_page_bid,
                    no_data=keyword.no_data,
                    no_data_reason=keyword.no_data_reason,
                    last_attempted_at=keyword.last_attempted_at,
                    last_succeeded_at=keyword.last_succeeded_at,
                    last_status_code=keyword.last_status_code,
                    last_status_message=keyword.last_status_message,
                    data_as_of=data_as_of(points),
                    is_refresh_eligible=policy.is_eligible(keyword.last_attempted_at, now),
                    last_12_months=[SearchVolumePoint.model_validate(point) for point in points],
                )
            )

        sorted_rows = sort_keyphrase_rows(rows)
        return CategoryKeyphrasesView(
            location_id=town.town_id,
            location_name=town.name,
            county_name=town.county.name,
            category_id=category.category_id,
            category_display_name=category.display_name,
            expected_main_keyword=build_expected_main_keyword(category.display_name, town.name),
            refresh_cooldown_days=policy.cooldown_days,
            rows=sorted_rows,
            weighted_total_last_12_months=weighted_monthly_totals(sorted_rows),
        )

    # Refresh

    async def refresh_keyword(self, location_id: int, category_id: str, keyword_id: int) -> RefreshSummary:
        """Refresh one keyword. Raises `RefreshCooldownError` while it is cooling down."""
        return await self.pipeline.refresh_keyword(
            location_id,
            category_id,
            keyword_id,
            policy=self.policy,
        )

    async def refresh_eligible_keywords(self, location_id: int, category_id: str) -> RefreshSummary:
        return await self.pipeline.refresh_eligible(location_id, category_id, policy=self.policy)

    # Mutations

    async def add_keyword_and_refresh(
        self,
        location_id: int,
        category_id: str,
        keyword: str,
        keyword_type: str = KEYWORD_TYPE_MODIFIER,
    ) -> RefreshSummary:
        """Validate and insert a keyphrase, then fetch its search volume.

        The insert and the classification pass commit before the provider is
        called; the refresh that follows ignores the cooldown. Missing provider
        configuration is raised before anything is written.
        """
        normalized_category_id = self._require_scope(location_id, category_id)
        normalized_keyword = normalize_keyword(keyword)
        if not normalized_keyword:
            raise KeywordValidationError("Keyword is required.")
        if keyword_type not in CREATABLE_KEYWORD_TYPES:
            raise KeywordValidationError("Keyword type is invalid.")
        self.pipeline.ensure_configured()

        async with self.session_factory() as session:
            async with session.begin():
                repository = KeyphraseRepository(session)
                town, category = await self._load_scope_context(
                    repository,
                    location_id,
                    normalized_category_id,
                )
                if not keyword_contains_location(normalized_keyword, town.name):
                    raise KeywordValidationError(
                        f'Please include the location "{town.name}" in the keyphrase.'
                    )

                expected_main_keyword = build_expected_main_keyword(category.display_name, town.name)
                if keyword_type == KEYWORD_TYPE_MAIN_TERM and not is_canonical_main_keyword(
                    normalized_keyword, expected_main_keyword
                ):
                    raise KeywordValidationError(
                        f'Main Term is only allowed when the keyphrase exactly matches "{expected_main_keyword}".'
                    )

                keyword_key = normalize_keyword_key(normalized_keyword)
                existing = await repository.find_by_normalized(
                    normalized_category_id,
                    location_id,
                    keyword_key,
                )
                if existing is not None:
                    raise KeywordValidationError(
                        "That keyword already exists for this category and location."
                    )

                if keyword_type == KEYWORD_TYPE_MAIN_TERM:
                    await self._demote_main_terms(repository, normalized_category_id, location_id)

                row = CategoryLocationKeyword(
                    category_id=normalized_category_id,
                    location_id=location_id,
                    keyword=normalized_keyword,
                    keyword_normalized=keyword_key,
                    keyword_type=keyword_type,
                    canonical_keyword_id=None,
                    no_data=False,
                )
                session.add(row)
                await session.flush()
                keyword_id = row.id

                await repository.converge_scope(normalized_category_id, location_id)

        logger.info(
            "Keyphrase added",
            extra={
                "category_id": normalized_category_id,
                "location_id": location_id,
                "keyword_id": keyword_id,
                "keyword_type": keyword_type,
            },
        )
        return await self.pipeline.refresh_keywords(
            location_id,
            normalized_category_id,
            [keyword_id],
            enforce_eligibility=False,
            policy=self.policy,
        )

    async def set_main_term(self, location_id: int, category_id: str, keyword_id: int) -> bool:
        """Promote a keyphrase to main term. Returns False when it does not exist in the scope."""
        normalized_category_id = normalize_category_id(category_id)
        if location_id <= 0 or not normalized_category_id or keyword_id <= 0:
            return False

        async with self.session_factory() as session:
            async with session.begin():
                repository = KeyphraseRepository(session)
                row = await repository.get_scope_keyword(normalized_category_id, location_id, keyword_id)
                if row is None:
                    return False

                town, category = await self._load_scope_context(
                    repository,
                    location_id,
                    normalized_category_id,
                )
                expected_main_keyword = build_expected_main_keyword(category.display_name, town.name)
                if not is_canonical_main_keyword(row.keyword, expected_main_keyword):
                    raise KeywordValidationError(
                        f'Only "{expected_main_keyword}" can be set as Main Term for this category and location.'
                    )

                await self._demote_main_terms(
                    repository,
                    normalized_category_id,
                    location_id,
                    keep_id=row.id,
                )
                row.keyword_type = KEYWORD_TYPE_MAIN_TERM
                row.canonical_keyword_id = None
                await repository.converge_scope(normalized_category_id, location_id)

        logger.info(
            "Main term set",
            extra={
                "category_id": normalized_category_id,
                "location_id": location_id,
                "keyword_id": keyword_id,
            },
        )
        return True

    async def set_keyword_type(
        self,
        location_id: int,
        category_id: str,
        keyword_id: int,
        keyword_type: str,
    ) -> bool:
        """Manually retype a keyphrase as modifier or adjacent."""
        normalized_category_id = normalize_category_id(category_id)
        if location_id <= 0 or not normalized_category_id or keyword_id <= 0:
            return False
        if keyword_type not in MANUAL_KEYWORD_TYPES:
            raise KeywordValidationError("Only Modifier or Adjacent can be manually set.")

        async with self.session_factory() as session:
            async with session.begin():
                repository = KeyphraseRepository(session)
                row = await repository.get_scope_keyword(normalized_category_id, location_id, keyword_id)
                if row is None:
                    return False
                if row.keyword_type == KEYWORD_TYPE_MAIN_TERM:
                    raise KeywordValidationError(
                        "Main term cannot be changed directly. Set another keyword as Main Term first."
                    )

                row.keyword_type = keyword_type
                row.canonical_keyword_id = None
                await repository.converge_scope(normalized_category_id, location_id)

        return True

    async def delete_keyword(self, location_id: int, category_id: str, keyword_id: int) -> bool:
        """Delete a keyphrase and its series, then re-elect representatives."""
        normalized_category_id = normalize_category_id(category_id)
        if location_id <= 0 or not normalized_category_id or keyword_id <= 0:
            return False

        async with self.session_factory() as session:
            async with session.begin():
                repository = KeyphraseRepository(session)
                row = await repository.get_scope_keyword(normalized_category_id, location_id, keyword_id)
                if row is None:
                    return False

                await repository.delete_keyword(row)
                await repository.converge_scope(normalized_category_id, location_id)

        logger.info(
            "Keyphrase deleted",
            extra={
                "category_id": normalized_category_id,
                "location_id": location_id,
                "keyword_id": keyword_id,
            },
        )
        return True

    # Helpers

    def _require_scope(self, location_id: int, category_id: str) -> str:
        normalized = normalize_category_id(category_id)
        if location_id <= 0 or not normalized:
            raise ValidationError("Location and category are required.")
        return normalized

    async def _resolve_policy(self, session: AsyncSession) -> RefreshPolicy:
        if self.policy is not None:
            return self.policy
        return await load_refresh_policy(session, self.config)

    async def _load_scope_context(
        self,
        repository: KeyphraseRepository,
        location_id: int,
        category_id: str,
    ) -> tuple[Town, BusinessCategory]:
        town = await repository.get_town(location_id)
        if town is None:
            raise LocationNotFoundError(location_id)
        category = await repository.get_category(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        return town, category

    async def _demote_main_terms(
        self,
        repository: KeyphraseRepository,
        category_id: str,
        location_id: int,
        keep_id: int | None = None,
    ) -> None:
        """Turn the current main term into a modifier and flush before a new one is set."""
        rows = await repository.list_scope_keywords(category_id, location_id, for_update=True)
        demoted = False
        for row in rows:
            if row.keyword_type == KEYWORD_TYPE_MAIN_TERM and row.id != keep_id:
                row.keyword_type = KEYWORD_TYPE_MODIFIER
                row.canonical_keyword_id = None
                demoted = True
        if demoted:
            await repository.session.flush()
