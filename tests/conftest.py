"""Shared fixtures: in-memory SQLite store, seeded scope and a fake search volume provider."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from localseo.integrations.dataforseo import (
    KeywordVolumeError,
    KeywordVolumeOk,
    KeywordVolumeResult,
    MonthlySearch,
    SearchVolumeBatchError,
    SearchVolumeBatchOk,
)
from localseo.models import (
    Base,
    BusinessCategory,
    CategoryLocationKeyword,
    CategoryLocationSearchVolume,
    County,
    Town,
)
from localseo.services.keyphrases.policy import RefreshPolicy
from localseo.services.keyphrases.refresh import KeyphraseRefreshPipeline
from localseo.services.keyphrases.service import CategoryLocationKeywordService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

LOCATION_ID = 101
OTHER_LOCATION_ID = 102
CATEGORY_ID = "gcid:plumber"
OTHER_CATEGORY_ID = "gcid:electrician"


class _FakeSearchVolumeClient:
    def __init__(self, provider: FakeSearchVolumeProvider) -> None:
        self._provider = provider

    async def __aenter__(self) -> _FakeSearchVolumeClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        return None

    async def get_search_volume(self, keywords: list[str]) -> SearchVolumeBatchOk | SearchVolumeBatchError:
        provider = self._provider
        provider.calls.append(list(keywords))
        if provider.delay:
            await asyncio.sleep(provider.delay)
        if provider.exception is not None:
            raise provider.exception
        if provider.batch_error is not None:
            return provider.batch_error
        return SearchVolumeBatchOk(
            20000,
            "Ok.",
            {
                keyword.lower(): provider.results[keyword.lower()]
                for keyword in keywords
                if keyword.lower() in provider.results
            },
        )


class FakeSearchVolumeProvider:
    """Scripted stand-in for the DataForSEO client."""

    def __init__(self) -> None:
        self.results: dict[str, KeywordVolumeResult] = {}
        self.batch_error: SearchVolumeBatchError | None = None
        self.exception: Exception | None = None
        self.delay = 0.0
        self.calls: list[list[str]] = []

    def client(self) -> _FakeSearchVolumeClient:
        return _FakeSearchVolumeClient(self)

    def set_volume(
        self,
        keyword: str,
        months: dict[tuple[int, int], int],
        *,
        search_volume: int | None = None,
        **fields: Any,
    ) -> None:
        points = tuple(
            MonthlySearch(year=year, month=month, search_volume=volume)
            for (year, month), volume in months.items()
        )
        fields.setdefault("location_key", "2826")
        fields.setdefault("language_key", "1000")
        fields.setdefault("search_partners", False)
        fields.setdefault("status_code", 20000)
        fields.setdefault("status_message", "Ok.")
        self.results[keyword.lower()] = KeywordVolumeOk(
            search_volume=search_volume if search_volume is not None else max(months.values(), default=0),
            monthly_searches=points,
            **fields,
        )

    def set_below_threshold(self, keyword: str) -> None:
        self.results[keyword.lower()] = KeywordVolumeOk(
            search_volume=None,
            status_code=20000,
            status_message="Ok.",
        )

    def set_keyword_error(self, keyword: str, status_code: int, status_message: str) -> None:
        self.results[keyword.lower()] = KeywordVolumeError(status_code, status_message)


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory seeded with two towns and two categories."""
    factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with factory() as session:
        async with session.begin():
            session.add(County(county_id=1, name="City of Bristol"))
            session.add(County(county_id=2, name="Somerset"))
            await session.flush()
            session.add(Town(town_id=LOCATION_ID, county_id=1, name="Bristol"))
            session.add(Town(town_id=OTHER_LOCATION_ID, county_id=2, name="Bath"))
            session.add(BusinessCategory(category_id=CATEGORY_ID, display_name="Plumbers", status="Active"))
            session.add(
                BusinessCategory(
                    category_id=OTHER_CATEGORY_ID,
                    display_name="Electricians",
                    status="Active",
                )
            )
    return factory


@pytest.fixture
def volume_provider() -> FakeSearchVolumeProvider:
    return FakeSearchVolumeProvider()


@pytest.fixture
def refresh_policy() -> RefreshPolicy:
    return RefreshPolicy.from_days(30)


@pytest.fixture
def pipeline(
    session_factory: async_sessionmaker[AsyncSession],
    volume_provider: FakeSearchVolumeProvider,
) -> KeyphraseRefreshPipeline:
    return KeyphraseRefreshPipeline(
        session_factory=session_factory,
        client_factory=volume_provider.client,
        timeout_seconds=5.0,
    )


@pytest.fixture
def keyphrase_service(
    session_factory: async_sessionmaker[AsyncSession],
    pipeline: KeyphraseRefreshPipeline,
    refresh_policy: RefreshPolicy,
) -> CategoryLocationKeywordService:
    return CategoryLocationKeywordService(
        session_factory=session_factory,
        pipeline=pipeline,
        policy=refresh_policy,
    )


InsertKeyword = Callable[..., Awaitable[int]]


@pytest.fixture
def insert_keyword(session_factory: async_sessionmaker[AsyncSession]) -> InsertKeyword:
    """Insert a keyword row directly, bypassing validation and classification."""

    async def _insert(
        keyword: str,
        keyword_type: str = "modifier",
        *,
        location_id: int = LOCATION_ID,
        category_id: str = CATEGORY_ID,
        months: dict[tuple[int, int], int] | None = None,
        **fields: Any,
    ) -> int:
        async with session_factory() as session:
            async with session.begin():
                row = CategoryLocationKeyword(
                    category_id=category_id,
                    location_id=location_id,
                    keyword=keyword,
                    keyword_normalized=keyword.strip().lower(),
                    keyword_type=keyword_type,
                    **fields,
                )
                session.add(row)
                await session.flush()
                for (year, month), volume in (months or {}).items():
                    session.add(
                        CategoryLocationSearchVolume(
                            keyword_id=row.id,
                            year=year,
                            month=month,
                            search_volume=volume,
                        )
                    )
                return row.id

    return _insert


@pytest.fixture
def load_keywords(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[dict[int, CategoryLocationKeyword]]]:
    """Load every keyword of a scope keyed by id."""

    async def _load(
        *,
        location_id: int = LOCATION_ID,
        category_id: str = CATEGORY_ID,
    ) -> dict[int, CategoryLocationKeyword]:
        async with session_factory() as session:
            result = await session.execute(
                select(CategoryLocationKeyword).where(
                    CategoryLocationKeyword.location_id == location_id,
                    CategoryLocationKeyword.category_id == category_id,
                )
            )
            return {row.id: row for row in result.scalars().all()}

    return _load


@pytest.fixture
def load_points(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[int], Awaitable[list[tuple[int, int, int]]]]:
    """Load a keyword's monthly series as ascending (year, month, volume) tuples."""

    async def _load(keyword_id: int) -> list[tuple[int, int, int]]:
        async with session_factory() as session:
            result = await session.execute(
                select(CategoryLocationSearchVolume)
                .where(CategoryLocationSearchVolume.keyword_id == keyword_id)
                .order_by(CategoryLocationSearchVolume.year, CategoryLocationSearchVolume.month)
            )
            return [(point.year, point.month, point.search_volume) for point in result.scalars().all()]

    return _load
