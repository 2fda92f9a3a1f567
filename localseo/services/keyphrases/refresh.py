"""Search volume refresh pipeline for one (category, location) scope.

A refresh runs in three phases:

1. read the requested keywords and decide eligibility in a short session;
2. call the search volume provider outside any database transaction;
3. apply every per-keyword outcome and re-converge classification in one
   write transaction, so a failure or cancellation leaves prior state intact.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timezone

import httpx
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from localseo.config import Settings, settings as default_settings
from localseo.core.database import async_session_maker
from localseo.core.exceptions import ExternalAPIError, RefreshCooldownError, ValidationError
from localseo.integrations.dataforseo import (
    DataForSEOClient,
    KeywordVolumeError,
    KeywordVolumeOk,
    MonthlySearch,
    SearchVolumeBatch,
    SearchVolumeBatchError,
)
from localseo.models.keyword import (
    NO_DATA_API_ERROR,
    NO_DATA_BELOW_THRESHOLD,
    NO_DATA_UNKNOWN,
    STATUS_MESSAGE_MAX_LENGTH,
    CategoryLocationKeyword,
)
from localseo.repositories.keyphrase_repository import KeyphraseRepository
from localseo.services.keyphrases.fingerprint import build_fingerprint
from localseo.services.keyphrases.policy import RefreshPolicy, as_utc, load_refresh_policy
from localseo.services.keyphrases.text import (
    normalize_category_id,
    normalize_keyword,
    normalize_keyword_key,
)
from localseo.services.keyphrases.types import RefreshCandidate, RefreshSummary

logger = logging.getLogger(__name__)

MONTHLY_POINTS_RETAINED = 12
MISSING_RESULT_MESSAGE = "No search volume result was returned for this keyword."
TIMEOUT_MESSAGE = "Search volume request timed out."
WRITE_ATTEMPTS = 3
WRITE_RETRY_DELAY_SECONDS = 0.2

SessionFactory = Callable[[], AsyncSession]
ClientFactory = Callable[[], DataForSEOClient]


def truncate_status_message(message: str | None) -> str | None:
    if message is None:
        return None
    return message.strip()[:STATUS_MESSAGE_MAX_LENGTH]


def most_recent_points(
    points: Iterable[MonthlySearch],
    limit: int = MONTHLY_POINTS_RETAINED,
) -> list[MonthlySearch]:
    """The `limit` most recent distinct months, ascending."""
    by_month: dict[tuple[int, int], MonthlySearch] = {}
    for point in points:
        by_month[(point.year, point.month)] = point
    latest = sorted(by_month, reverse=True)[:limit]
    return [by_month[key] for key in sorted(latest)]


def is_dropped_connection(exc: Exception) -> bool:
    """Whether a store error came from losing the connection mid-transaction."""
    if isinstance(exc, (InterfaceError, OperationalError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def attempted_since_read(row: CategoryLocationKeyword, candidate: RefreshCandidate) -> bool:
    """Another refresh wrote an attempt after this one read the keyword."""
    if row.last_attempted_at is None or candidate.last_attempted_at is None:
        return row.last_attempted_at is not None
    return as_utc(row.last_attempted_at) != as_utc(candidate.last_attempted_at)


def mark_keyword_errored(
    row: CategoryLocationKeyword,
    *,
    reason: str,
    status_code: int | None,
    status_message: str | None,
    attempted_at: datetime,
) -> None:
    """Record a failed attempt. Cached metrics and series stay as last known."""
    row.no_data = True
    row.no_data_reason = reason
    row.fingerprint = None
    row.last_attempted_at = attempted_at
    row.last_status_code = status_code
    row.last_status_message = truncate_status_message(status_message)


class KeyphraseRefreshPipeline:
    """Refreshes cached search volume for keywords of one scope."""

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        client_factory: ClientFactory | None = None,
        config: Settings | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.session_factory = session_factory or async_session_maker
        self.config = config or default_settings
        self.client_factory = client_factory or (lambda: DataForSEOClient(config=self.config))
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else self.config.dataforseo_timeout_seconds
        )
        self.write_retry_delay_seconds = WRITE_RETRY_DELAY_SECONDS

    def ensure_configured(self) -> None:
        """Raise `APIKeyMissingError` or `ConfigurationError` when the provider cannot be called.

        Building the client opens no connection, so this is safe to run before
        a mutation that is followed by a refresh.
        """
        self.client_factory()

    async def refresh_keyword(
        self,
        location_id: int,
        category_id: str,
        keyword_id: int,
        *,
        policy: RefreshPolicy | None = None,
    ) -> RefreshSummary:
        """Refresh one keyword, failing when it is still in cooldown."""
        return await self.refresh_keywords(
            location_id,
            category_id,
            [keyword_id],
            enforce_eligibility=True,
            policy=policy,
        )

    async def refresh_eligible(
        self,
        location_id: int,
        category_id: str,
        *,
        policy: RefreshPolicy | None = None,
    ) -> RefreshSummary:
        """Refresh every keyword of the scope whose cooldown has expired.

        Keywords still in cooldown are counted as skipped.
        """
        category_id = self._require_scope(location_id, category_id)

        async with self.session_factory() as session:
            rows = await KeyphraseRepository(session).list_scope_keywords(category_id, location_id)
            keyword_ids = [row.id for row in rows]

        return await self.refresh_keywords(
            location_id,
            category_id,
            keyword_ids,
            enforce_eligibility=False,
            policy=policy,
        )

    async def refresh_keywords(
        self,
        location_id: int,
        category_id: str,
        keyword_ids: Iterable[int],
        *,
        enforce_eligibility: bool,
        policy: RefreshPolicy | None = None,
    ) -> RefreshSummary:
        """Refresh the requested keywords of a scope in one provider batch.

        Args:
            location_id: Town id of the scope.
            category_id: Business category id of the scope.
            keyword_ids: Keywords to refresh; non-positive and repeated ids are ignored.
            enforce_eligibility: Raise `RefreshCooldownError` instead of skipping
                keywords that are still in cooldown.
            policy: Cooldown policy; read from admin settings when omitted.

        Returns:
            Counts of requested, refreshed, skipped and errored keywords.
            Provider failures are recorded on the keywords, never raised.
        """
        category_id = self._require_scope(location_id, category_id)
        requested_ids = sorted({keyword_id for keyword_id in keyword_ids if keyword_id > 0})
        if not requested_ids:
            return RefreshSummary()

        now = datetime.now(timezone.utc)
        async with self.session_factory() as session:
            policy = policy or await load_refresh_policy(session, self.config)
            rows = await KeyphraseRepository(session).list_scope_keywords(
                category_id,
                location_id,
                keyword_ids=requested_ids,
            )
            candidates = [
                RefreshCandidate(
                    keyword_id=row.id,
                    keyword=row.keyword,
                    last_attempted_at=row.last_attempted_at,
                )
                for row in rows
                if policy.is_eligible(row.last_attempted_at, now)
            ]
            ineligible_ids = [
                row.id for row in rows if not policy.is_eligible(row.last_attempted_at, now)
            ]

        if enforce_eligibility and ineligible_ids:
            logger.info(
                "Refresh rejected by cooldown",
                extra={
                    "category_id": category_id,
                    "location_id": location_id,
                    "keyword_ids": ineligible_ids,
                    "cooldown_days": policy.cooldown_days,
                },
            )
            raise RefreshCooldownError(policy.cooldown_days, ineligible_ids)

        requested = len(rows)
        skipped = len(ineligible_ids)
        if not candidates:
            return RefreshSummary(requested=requested, skipped=skipped)

        batch = await self._fetch_batch([candidate.keyword for candidate in candidates])
        attempted_at = datetime.now(timezone.utc)

        refreshed, errored, superseded = await self._write_outcomes(
            category_id,
            location_id,
            candidates,
            batch,
            attempted_at,
        )

        summary = RefreshSummary(
            requested=requested,
            refreshed=refreshed,
            skipped=skipped + superseded,
            errored=errored,
        )
        logger.info(
            "Keyphrase refresh completed",
            extra={"category_id": category_id, "location_id": location_id, **summary.to_dict()},
        )
        return summary

    def _require_scope(self, location_id: int, category_id: str) -> str:
        normalized = normalize_category_id(category_id)
        if location_id <= 0 or not normalized:
            raise ValidationError("Location and category are required.")
        return normalized

    async def _fetch_batch(self, keywords: Sequence[str]) -> SearchVolumeBatch:
        """Call the provider once. Every failure becomes a batch error value.

        The client is built before the guarded block so missing credentials or
        endpoint configuration raise before any network call.
        """
        unique: dict[str, str] = {}
        for keyword in keywords:
            normalized = normalize_keyword(keyword)
            if normalized:
                unique.setdefault(normalize_keyword_key(normalized), normalized)

        client = self.client_factory()
        try:
            async with client:
                return await asyncio.wait_for(
                    client.get_search_volume(list(unique.values())),
                    timeout=self.timeout_seconds,
                )
        except TimeoutError:
            logger.warning(
                "Search volume batch timed out",
                extra={"keyword_count": len(unique), "timeout_seconds": self.timeout_seconds},
            )
            return SearchVolumeBatchError(None, TIMEOUT_MESSAGE)
        except (ExternalAPIError, httpx.HTTPError, ValueError) as e:
            logger.warning("Search volume batch failed", extra={"error": str(e)})
            return SearchVolumeBatchError(getattr(e, "status_code", None), str(e) or type(e).__name__)

    async def _write_outcomes(
        self,
        category_id: str,
        location_id: int,
        candidates: Sequence[RefreshCandidate],
        batch: SearchVolumeBatch,
        attempted_at: datetime,
    ) -> tuple[int, int, int]:
        """Apply the batch in one transaction, re-running it when the connection drops.

        Every attempt opens a fresh session and re-reads the locked rows, so a
        retry never applies on top of a half-written transaction.
        """
        for attempt in range(1, WRITE_ATTEMPTS + 1):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        return await self._apply_batch(
                            session,
                            category_id,
                            location_id,
                            candidates,
                            batch,
                            attempted_at,
                        )
            except DBAPIError as e:
                if not is_dropped_connection(e) or attempt == WRITE_ATTEMPTS:
                    raise
                logger.warning(
                    "Keyphrase refresh write lost its connection; retrying",
                    extra={
                        "category_id": category_id,
                        "location_id": location_id,
                        "keyword_count": len(candidates),
                        "attempt": attempt,
                        "max_attempts": WRITE_ATTEMPTS,
                    },
                )
                await asyncio.sleep(self.write_retry_delay_seconds * attempt)

        raise RuntimeError("Keyphrase refresh write loop exhausted")

    async def _apply_batch(
        self,
        session: AsyncSession,
        category_id: str,
        location_id: int,
        candidates: Sequence[RefreshCandidate],
        batch: SearchVolumeBatch,
        attempted_at: datetime,
    ) -> tuple[int, int, int]:
        """Returns (refreshed, errored, superseded) counts.

        Keywords deleted since the read phase are dropped. Keywords another
        refresh attempted since the read phase are left as that refresh wrote
        them and counted as superseded.
        """
        repository = KeyphraseRepository(session)
        candidates_by_id = {candidate.keyword_id: candidate for candidate in candidates}
        locked = await repository.list_scope_keywords(
            category_id,
            location_id,
            keyword_ids=list(candidates_by_id),
            for_update=True,
        )
        rows = [row for row in locked if not attempted_since_read(row, candidates_by_id[row.id])]
        superseded = len(locked) - len(rows)
        if superseded:
            logger.info(
                "Keywords refreshed concurrently; leaving their results in place",
                extra={
                    "category_id": category_id,
                    "location_id": location_id,
                    "keyword_ids": [row.id for row in locked if row not in rows],
                },
            )

        refreshed = 0
        errored = 0
        if isinstance(batch, SearchVolumeBatchError):
            logger.warning(
                "Search volume batch failed; marking keywords as errored",
                extra={
                    "category_id": category_id,
                    "location_id": location_id,
                    "status_code": batch.status_code,
                    "status": batch.status_message,
                    "keyword_count": len(rows),
                },
            )
            for row in rows:
                mark_keyword_errored(
                    row,
                    reason=NO_DATA_API_ERROR,
                    status_code=batch.status_code,
                    status_message=batch.status_message,
                    attempted_at=attempted_at,
                )
                errored += 1
        else:
            for row in rows:
                result = batch.results.get(normalize_keyword_key(row.keyword))
                if result is None:
                    mark_keyword_errored(
                        row,
                        reason=NO_DATA_UNKNOWN,
                        status_code=batch.status_code,
                        status_message=MISSING_RESULT_MESSAGE,
                        attempted_at=attempted_at,
                    )
                    errored += 1
                elif isinstance(result, KeywordVolumeError):
                    mark_keyword_errored(
                        row,
                        reason=NO_DATA_API_ERROR,
                        status_code=result.status_code,
                        status_message=result.status_message,
                        attempted_at=attempted_at,
                    )
                    errored += 1
                elif result.search_volume is None:
                    await self._apply_below_threshold(repository, row, result, attempted_at)
                    refreshed += 1
                else:
                    await self._apply_volume(repository, row, result, attempted_at)
                    refreshed += 1

        await repository.converge_scope(category_id, location_id)
        return refreshed, errored, superseded

    async def _apply_below_threshold(
        self,
        repository: KeyphraseRepository,
        row: CategoryLocationKeyword,
        result: KeywordVolumeOk,
        attempted_at: datetime,
    ) -> None:
        row.avg_search_volume = None
        row.cpc = None
        row.competition = None
        row.competition_index = None
        row.low_top_of_page_bid = None
        row.high_top_of_page_bid = None
        row.fingerprint = None
        row.no_data = True
        row.no_data_reason = NO_DATA_BELOW_THRESHOLD
        row.last_attempted_at = attempted_at
        row.last_status_code = result.status_code
        row.last_status_message = truncate_status_message(result.status_message)
        await repository.delete_monthly_points(row.id)

    async def _apply_volume(
        self,
        repository: KeyphraseRepository,
        row: CategoryLocationKeyword,
        result: KeywordVolumeOk,
        attempted_at: datetime,
    ) -> None:
        row.avg_search_volume = result.search_volume
        row.cpc = result.cpc
        row.competition = result.competition
        row.competition_index = result.competition_index
        row.low_top_of_page_bid = result.low_top_of_page_bid
        row.high_top_of_page_bid = result.high_top_of_page_bid
        row.fingerprint = build_fingerprint(
            result.location_key or self.config.search_volume_location_key,
            result.language_key or self.config.search_volume_language_key,
            (
                result.search_partners
                if result.search_partners is not None
                else self.config.search_volume_search_partners
            ),
            result.monthly_searches,
        )
        row.no_data = False
        row.no_data_reason = None
        row.last_attempted_at = attempted_at
        row.last_succeeded_at = attempted_at
        row.last_status_code = result.status_code
        row.last_status_message = truncate_status_message(result.status_message)
        await repository.replace_monthly_points(row.id, most_recent_points(result.monthly_searches))
