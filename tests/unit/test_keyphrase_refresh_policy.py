"""Unit tests for the refresh cooldown policy."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from localseo.config import Settings
from localseo.models import AdminSettings
from localseo.services.keyphrases.policy import RefreshPolicy, as_utc, load_refresh_policy

NOW = datetime(2026, 3, 31, 12, 0, tzinfo=timezone.utc)


def test_never_attempted_keyword_is_eligible() -> None:
    assert RefreshPolicy.from_days(30).is_eligible(None, NOW) is True


def test_cutoff_boundary_is_inclusive() -> None:
    policy = RefreshPolicy.from_days(30)

    assert policy.is_eligible(NOW - timedelta(days=30), NOW) is True
    assert policy.is_eligible(NOW - timedelta(days=30) + timedelta(seconds=1), NOW) is False


def test_zero_day_cooldown_makes_every_attempt_eligible() -> None:
    assert RefreshPolicy.from_days(0).is_eligible(NOW, NOW) is True


def test_cooldown_is_clamped() -> None:
    assert RefreshPolicy.from_days(-5).cooldown_days == 0
    assert RefreshPolicy.from_days(10_000).cooldown_days == 3650


def test_naive_datetimes_are_treated_as_utc() -> None:
    naive = datetime(2026, 3, 1, 12, 0)

    assert as_utc(naive) == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert RefreshPolicy.from_days(30).is_eligible(naive, NOW) is True


@pytest.mark.asyncio
async def test_load_refresh_policy_falls_back_to_configuration(session_factory) -> None:
    async with session_factory() as session:
        policy = await load_refresh_policy(session, Settings(search_volume_refresh_cooldown_days=14))

    assert policy == RefreshPolicy(cooldown_days=14)


@pytest.mark.asyncio
async def test_load_refresh_policy_prefers_admin_settings(session_factory) -> None:
    async with session_factory() as session:
        async with session.begin():
            session.add(AdminSettings(id=1, search_volume_refresh_cooldown_days=9000))

    async with session_factory() as session:
        policy = await load_refresh_policy(session, Settings(search_volume_refresh_cooldown_days=14))

    assert policy.cooldown_days == 3650
