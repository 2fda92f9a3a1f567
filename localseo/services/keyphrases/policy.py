"""Refresh cooldown policy and the settings provider behind it."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from localseo.config import Settings, clamp_cooldown_days, settings as default_settings
from localseo.models.location import AdminSettings

ADMIN_SETTINGS_ROW_ID = 1


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class RefreshPolicy:
    """Cooldown between search volume refresh attempts of the same keyword."""

    cooldown_days: int

    @classmethod
    def from_days(cls, cooldown_days: int) -> RefreshPolicy:
        return cls(cooldown_days=clamp_cooldown_days(cooldown_days))

    def cutoff(self, now: datetime) -> datetime:
        return as_utc(now) - timedelta(days=self.cooldown_days)

    def is_eligible(self, last_attempted_at: datetime | None, now: datetime) -> bool:
        """Never attempted, or last attempted at or before the cooldown cutoff."""
        if last_attempted_at is None:
            return True
        return as_utc(last_attempted_at) <= self.cutoff(now)


async def load_refresh_policy(
    session: AsyncSession,
    config: Settings | None = None,
) -> RefreshPolicy:
    """Read the operator cooldown from admin settings, falling back to configuration."""
    config = config or default_settings
    result = await session.execute(
        select(AdminSettings.search_volume_refresh_cooldown_days).where(
            AdminSettings.id == ADMIN_SETTINGS_ROW_ID
        )
    )
    cooldown_days = result.scalar_one_or_none()
    if cooldown_days is None:
        cooldown_days = config.search_volume_refresh_cooldown_days
    return RefreshPolicy.from_days(cooldown_days)
