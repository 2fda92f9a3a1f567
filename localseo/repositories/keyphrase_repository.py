"""Repository for category/location keyphrase reads and writes."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from localseo.models.keyword import (
    KEYWORD_TYPE_MAIN_TERM,
    CategoryLocationKeyword,
    CategoryLocationSearchVolume,
)
from localseo.models.location import CATEGORY_STATUS_ACTIVE, BusinessCategory, County, Town
from localseo.services.keyphrases.classification import (
    KeywordClassification,
    plan_classification_changes,
)
from localseo.services.keyphrases.fingerprint import MonthlyVolume

logger = logging.getLogger(__name__)


class KeyphraseRepository:
    """Scoped queries over keyphrases and their monthly series.

    Works inside the caller's session and transaction; never commits.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_town(self, location_id: int) -> Town | None:
        result = await self.session.execute(
            select(Town).options(selectinload(Town.county)).where(Town.town_id == location_id)
        )
        return result.scalar_one_or_none()

    async def get_category(self, category_id: str) -> BusinessCategory | None:
        result = await self.session.execute(
            select(BusinessCategory).where(BusinessCategory.category_id == category_id)
        )
        return result.scalar_one_or_none()

    async def list_scope_keywords(
        self,
        category_id: str,
        location_id: int,
        *,
        keyword_ids: Iterable[int] | None = None,
        for_update: bool = False,
    ) -> list[CategoryLocationKeyword]:
        """Keywords of one scope ordered by id, optionally limited to `keyword_ids`."""
        stmt = (
            select(CategoryLocationKeyword)
            .where(
                CategoryLocationKeyword.category_id == category_id,
                CategoryLocationKeyword.location_id == location_id,
            )
            .order_by(CategoryLocationKeyword.id)
        )
        if keyword_ids is not None:
            stmt = stmt.where(CategoryLocationKeyword.id.in_(list(keyword_ids)))
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_scope_keyword(
        self,
        category_id: str,
        location_id: int,
        keyword_id: int,
    ) -> CategoryLocationKeyword | None:
        rows = await self.list_scope_keywords(
            category_id,
            location_id,
            keyword_ids=[keyword_id],
            for_update=True,
        )
        return rows[0] if rows else None

    async def find_by_normalized(
        self,
        category_id: str,
        location_id: int,
        keyword_normalized: str,
    ) -> CategoryLocationKeyword | None:
        result = await self.session.execute(
            select(CategoryLocationKeyword).where(
                CategoryLocationKeyword.category_id == category_id,
                CategoryLocationKeyword.location_id == location_id,
                CategoryLocationKeyword.keyword_normalized == keyword_normalized,
            )
        )
        return result.scalars().first()

    async def list_monthly_points(
        self,
        keyword_ids: Sequence[int],
    ) -> dict[int, list[CategoryLocationSearchVolume]]:
        """Monthly points per keyword, newest first."""
        if not keyword_ids:
            return {}
        result = await self.session.execute(
            select(CategoryLocationSearchVolume)
            .where(CategoryLocationSearchVolume.keyword_id.in_(list(keyword_ids)))
            .order_by(
                CategoryLocationSearchVolume.year.desc(),
                CategoryLocationSearchVolume.month.desc(),
            )
        )
        points: dict[int, list[CategoryLocationSearchVolume]] = {}
        for point in result.scalars().all():
            points.setdefault(point.keyword_id, []).append(point)
        return points

    async def delete_monthly_points(self, keyword_id: int) -> None:
        await self.session.execute(
            delete(CategoryLocationSearchVolume).where(
                CategoryLocationSearchVolume.keyword_id == keyword_id
            )
        )

    async def replace_monthly_points(
        self,
        keyword_id: int,
        points: Iterable[MonthlyVolume],
    ) -> None:
        """Replace a keyword's series wholesale. The delete runs before the inserts flush."""
        await self.delete_monthly_points(keyword_id)
        self.session.add_all(
            CategoryLocationSearchVolume(
                keyword_id=keyword_id,
                year=point.year,
                month=point.month,
                search_volume=point.search_volume,
            )
            for point in points
        )

    async def delete_keyword(self, keyword: CategoryLocationKeyword) -> None:
        await self.delete_monthly_points(keyword.id)
        await self.session.delete(keyword)
        await self.session.flush()

    async def converge_scope(
        self,
        category_id: str,
        location_id: int,
    ) -> list[KeywordClassification]:
        """Re-run classification over the whole scope and apply only the deltas."""
        await self.session.flush()
        rows = await self.list_scope_keywords(category_id, location_id, for_update=True)
        changes = plan_classification_changes(rows)
        if not changes:
            return []

        by_id = {row.id: row for row in rows}
        for change in changes:
            row = by_id[change.keyword_id]
            row.keyword_type = change.keyword_type
            row.canonical_keyword_id = change.canonical_keyword_id
        await self.session.flush()

        logger.info(
            "Keyword classification converged",
            extra={
                "category_id": category_id,
                "location_id": location_id,
                "changed": len(changes),
            },
        )
        return changes

    async def list_location_categories(self, location_id: int) -> list[dict[str, Any]]:
        """Active categories that have keyphrases for a location, by display name."""
        keyword = CategoryLocationKeyword
        stmt = (
            select(
                BusinessCategory.category_id,
                BusinessCategory.display_name,
                func.count(keyword.id).label("keyword_count"),
                func.sum(case((keyword.keyword_type == KEYWORD_TYPE_MAIN_TERM, 1), else_=0)).label(
                    "main_term_count"
                ),
                func.max(keyword.updated_at).label("last_keyword_updated_at"),
            )
            .join(keyword, keyword.category_id == BusinessCategory.category_id)
            .where(
                keyword.location_id == location_id,
                BusinessCategory.status == CATEGORY_STATUS_ACTIVE,
            )
            .group_by(BusinessCategory.category_id, BusinessCategory.display_name)
            .order_by(BusinessCategory.display_name, BusinessCategory.category_id)
        )
        result = await self.session.execute(stmt)
        return [
            {
                "category_id": row.category_id,
                "category_display_name": row.display_name,
                "keyword_count": int(row.keyword_count or 0),
                "main_term_count": int(row.main_term_count or 0),
                "last_keyword_updated_at": _coerce_datetime(row.last_keyword_updated_at),
            }
            for row in result
        ]

    async def list_recent_category_locations(
        self,
        category_id: str,
        exclude_location_id: int,
        take: int,
    ) -> list[dict[str, Any]]:
        """Locations carrying keyphrases for a category, most recently updated first."""
        keyword = CategoryLocationKeyword
        last_updated = func.max(func.coalesce(keyword.updated_at, keyword.created_at))
        keyword_count = func.count(keyword.id)
        stmt = (
            select(
                Town.town_id,
                Town.name,
                County.name.label("county_name"),
                keyword_count.label("keyword_count"),
                last_updated.label("last_updated_at"),
            )
            .join(Town, Town.town_id == keyword.location_id)
            .join(County, County.county_id == Town.county_id)
            .where(keyword.category_id == category_id)
            .group_by(Town.town_id, Town.name, County.name)
            .order_by(last_updated.desc(), keyword_count.desc(), Town.name)
            .limit(take)
        )
        if exclude_location_id > 0:
            stmt = stmt.where(keyword.location_id != exclude_location_id)

        result = await self.session.execute(stmt)
        return [
            {
                "location_id": row.town_id,
                "location_name": row.name,
                "county_name": row.county_name,
                "keyword_count": int(row.keyword_count or 0),
                "last_updated_at": _coerce_datetime(row.last_updated_at),
            }
            for row in result
        ]


def _coerce_datetime(value: Any) -> datetime | None:
    # SQLite returns aggregated datetimes as text.
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
