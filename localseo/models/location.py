"""Location, category and admin settings lookup models."""

from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from localseo.models.base import Base, TimestampMixin

CATEGORY_STATUS_ACTIVE = "Active"


class County(Base):
    """Administrative county that groups towns."""

    __tablename__ = "counties"

    county_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    towns: Mapped[list[Town]] = relationship("Town", back_populates="county")

    def __repr__(self) -> str:
        return f"<County {self.name}>"


class Town(Base):
    """A location keyphrases are tracked for."""

    __tablename__ = "towns"

    town_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    county_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("counties.county_id"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    county: Mapped[County] = relationship("County", back_populates="towns")

    def __repr__(self) -> str:
        return f"<Town {self.name}>"


class BusinessCategory(Base):
    """Google Business Profile category."""

    __tablename__ = "business_categories"

    category_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=CATEGORY_STATUS_ACTIVE, nullable=False)

    def __repr__(self) -> str:
        return f"<BusinessCategory {self.category_id}>"


class AdminSettings(Base, TimestampMixin):
    """Single-row table of operator-editable settings."""

    __tablename__ = "admin_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    search_volume_refresh_cooldown_days: Mapped[int] = mapped_column(
        Integer,
        default=30,
        nullable=False,
    )
