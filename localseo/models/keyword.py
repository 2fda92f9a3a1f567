"""Category/location keyphrase and monthly search volume models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from localseo.models.base import Base, TimestampMixin

KeywordType = Literal["main_term", "modifier", "adjacent", "synonym"]
NoDataReason = Literal["below_threshold", "api_error", "unknown"]

KEYWORD_TYPE_MAIN_TERM: KeywordType = "main_term"
KEYWORD_TYPE_MODIFIER: KeywordType = "modifier"
KEYWORD_TYPE_ADJACENT: KeywordType = "adjacent"
KEYWORD_TYPE_SYNONYM: KeywordType = "synonym"

NO_DATA_BELOW_THRESHOLD: NoDataReason = "below_threshold"
NO_DATA_API_ERROR: NoDataReason = "api_error"
NO_DATA_UNKNOWN: NoDataReason = "unknown"

STATUS_MESSAGE_MAX_LENGTH = 255


class CategoryLocationKeyword(Base, TimestampMixin):
    """Keyphrase tracked for one (category, location) scope."""

    __tablename__ = "category_location_keywords"
    __table_args__ = (
        UniqueConstraint(
            "category_id",
            "location_id",
            "keyword_normalized",
            name="uq_category_location_keywords_scope_keyword",
        ),
        Index(
            "uq_category_location_keywords_main_term",
            "category_id",
            "location_id",
            unique=True,
            postgresql_where=text("keyword_type = 'main_term'"),
            sqlite_where=text("keyword_type = 'main_term'"),
        ),
        Index("ix_category_location_keywords_scope", "category_id", "location_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("business_categories.category_id"),
        nullable=False,
    )
    location_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("towns.town_id"),
        nullable=False,
    )

    # Core data
    keyword: Mapped[str] = mapped_column(String(500), nullable=False)
    keyword_normalized: Mapped[str] = mapped_column(String(500), nullable=False)
    keyword_type: Mapped[str] = mapped_column(String(20), default=KEYWORD_TYPE_MODIFIER, nullable=False)
    canonical_keyword_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("category_location_keywords.id", ondelete="SET NULL"),
        nullable=True,
    )
    fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Cached metrics from the latest successful refresh
    avg_search_volume: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cpc: Mapped[float | None] = mapped_column(Float, nullable=True)
    competition: Mapped[str | None] = mapped_column(String(50), nullable=True)
    competition_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    low_top_of_page_bid: Mapped[float | None] = mapped_column(Float, nullable=True)
    high_top_of_page_bid: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Refresh state
    no_data: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    no_data_reason: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_attempted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_succeeded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_status_message: Mapped[str | None] = mapped_column(String(STATUS_MESSAGE_MAX_LENGTH), nullable=True)

    def __repr__(self) -> str:
        return f"<CategoryLocationKeyword {self.keyword} ({self.keyword_type})>"


class CategoryLocationSearchVolume(Base):
    """One monthly search volume point owned by a keyphrase."""

    __tablename__ = "category_location_search_volumes"
    __table_args__ = (
        UniqueConstraint(
            "keyword_id",
            "year",
            "month",
            name="uq_category_location_search_volumes_keyword_month",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    keyword_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("category_location_keywords.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    search_volume: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<CategoryLocationSearchVolume {self.keyword_id} {self.year}-{self.month:02d}>"
