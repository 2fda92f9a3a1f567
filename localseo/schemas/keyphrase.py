"""Keyphrase schemas."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class SearchVolumePoint(BaseModel):
    """One month of search volume."""

    year: int
    month: int
    search_volume: int

    model_config = {"from_attributes": True}


class WeightedSearchVolumePoint(BaseModel):
    """One month of the weighted demand curve for a scope."""

    year: int
    month: int
    weighted_search_volume: Decimal


class KeyphraseRow(BaseModel):
    """A keyphrase as shown in the category/location view."""

    id: int
    keyword: str
    keyword_type: str
    canonical_keyword_id: int | None = None
    synonym_of_keyword: str | None = None

    # Cached metrics
    avg_search_volume: int | None = None
    cpc: float | None = None
    competition: str | None = None
    competition_index: int | None = None
    low_top_of_page_bid: float | None = None
    high_top_of_page_bid: float | None = None

    # Refresh state
    no_data: bool = False
    no_data_reason: str | None = None
    last_attempted_at: datetime | None = None
    last_succeeded_at: datetime | None = None
    last_status_code: int | None = None
    last_status_message: str | None = None
    data_as_of: date | None = None
    is_refresh_eligible: bool = True

    last_12_months: list[SearchVolumePoint] = Field(default_factory=list)


class CategoryKeyphrasesView(BaseModel):
    """Keyphrases of one (category, location) scope with the weighted demand curve."""

    location_id: int
    location_name: str
    county_name: str
    category_id: str
    category_display_name: str
    expected_main_keyword: str
    refresh_cooldown_days: int
    rows: list[KeyphraseRow]
    weighted_total_last_12_months: list[WeightedSearchVolumePoint]


class LocationCategoryRow(BaseModel):
    """A category tracked for a location."""

    category_id: str
    category_display_name: str
    keyword_count: int
    main_term_count: int
    last_keyword_updated_at: datetime | None = None


class LocationCategoryList(BaseModel):
    """Categories with keyphrases for one location."""

    location_id: int
    location_name: str
    county_name: str
    rows: list[LocationCategoryRow]


class RecentCategoryLocation(BaseModel):
    """Another location that already carries keyphrases for a category."""

    location_id: int
    location_name: str
    county_name: str
    keyword_count: int
    last_updated_at: datetime | None = None


class KeyphraseCreate(BaseModel):
    """Schema for adding a keyphrase to a scope."""

    keyword: str = Field(..., max_length=500)
    keyword_type: str = "modifier"


class KeyphraseTypeUpdate(BaseModel):
    """Schema for retyping a keyphrase."""

    keyword_type: str


class RefreshSummaryResponse(BaseModel):
    """Outcome counts of a refresh."""

    requested: int
    refreshed: int
    skipped: int
    errored: int

    model_config = {"from_attributes": True}


class KeyphraseMutationResponse(BaseModel):
    """Result of a keyphrase mutation."""

    success: bool
    message: str
    summary: RefreshSummaryResponse | None = None
