"""Keyphrase API endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse

from localseo.api.v1.keyphrases.constants import (
    DEFAULT_RECENT_LOCATIONS,
    KEYPHRASE_ADDED_MESSAGE,
    KEYPHRASE_DELETED_MESSAGE,
    KEYPHRASE_NOT_FOUND_DETAIL,
    KEYWORD_TYPE_SET_MESSAGE,
    MAIN_TERM_SET_MESSAGE,
    MAX_RECENT_LOCATIONS,
)
from localseo.core.exceptions import (
    CategoryNotFoundError,
    ConfigurationError,
    ExternalAPIError,
    LocalSeoError,
    LocationNotFoundError,
    RefreshCooldownError,
    ValidationError,
)
from localseo.dependencies import KeyphraseService
from localseo.schemas.keyphrase import (
    CategoryKeyphrasesView,
    KeyphraseCreate,
    KeyphraseMutationResponse,
    KeyphraseTypeUpdate,
    LocationCategoryList,
    RecentCategoryLocation,
    RefreshSummaryResponse,
)
from localseo.services.keyphrases.types import RefreshSummary

logger = logging.getLogger(__name__)

router = APIRouter()

KEYWORD_PATH = "/locations/{location_id}/categories/{category_id}/keywords/{keyword_id}"


def _status_for_error(exc: LocalSeoError) -> int:
    if isinstance(exc, LocationNotFoundError | CategoryNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, RefreshCooldownError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, ConfigurationError | ExternalAPIError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _failure(exc: LocalSeoError) -> JSONResponse:
    status_code = _status_for_error(exc)
    logger.info(
        "Keyphrase operation rejected",
        extra={"status_code": status_code, "error": exc.message, **exc.details},
    )
    return JSONResponse(
        status_code=status_code,
        content=KeyphraseMutationResponse(success=False, message=exc.message).model_dump(),
    )


def _not_found() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=KeyphraseMutationResponse(success=False, message=KEYPHRASE_NOT_FOUND_DETAIL).model_dump(),
    )


def _summary_message(summary: RefreshSummary) -> str:
    return (
        f"Refreshed {summary.refreshed} of {summary.requested} keyphrases "
        f"({summary.skipped} skipped, {summary.errored} errored)."
    )


def _summary_response(summary: RefreshSummary, message: str | None = None) -> KeyphraseMutationResponse:
    return KeyphraseMutationResponse(
        success=True,
        message=message or _summary_message(summary),
        summary=RefreshSummaryResponse.model_validate(summary),
    )


@router.get(
    "/locations/{location_id}/categories",
    response_model=LocationCategoryList,
    summary="List location categories",
    description="Return the active categories that carry keyphrases for a location.",
)
async def list_location_categories(
    location_id: int,
    service: KeyphraseService,
) -> LocationCategoryList:
    try:
        return await service.get_location_categories(location_id)
    except LocalSeoError as e:
        raise HTTPException(status_code=_status_for_error(e), detail=e.message) from e


@router.get(
    "/categories/{category_id}/recent-locations",
    response_model=list[RecentCategoryLocation],
    summary="List recent category locations",
    description="Return other locations with keyphrases for a category, most recently updated first.",
)
async def list_recent_category_locations(
    category_id: str,
    service: KeyphraseService,
    exclude_location_id: int = Query(0, ge=0),
    take: int = Query(DEFAULT_RECENT_LOCATIONS, ge=1, le=MAX_RECENT_LOCATIONS),
) -> list[RecentCategoryLocation]:
    try:
        return await service.get_recent_category_locations(category_id, exclude_location_id, take)
    except LocalSeoError as e:
        raise HTTPException(status_code=_status_for_error(e), detail=e.message) from e


@router.get(
    "/locations/{location_id}/categories/{category_id}",
    response_model=CategoryKeyphrasesView,
    summary="Get keyphrases",
    description=(
        "Return the keyphrases of a category/location with cached metrics, the last 12 months "
        "of search volume and the weighted demand curve."
    ),
)
async def get_keyphrases(
    location_id: int,
    category_id: str,
    service: KeyphraseService,
) -> CategoryKeyphrasesView:
    try:
        return await service.get_keyphrases(location_id, category_id)
    except LocalSeoError as e:
        raise HTTPException(status_code=_status_for_error(e), detail=e.message) from e


@router.post(
    "/locations/{location_id}/categories/{category_id}/keywords",
    response_model=KeyphraseMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add keyphrase",
    description="Validate and add a keyphrase, then fetch its search volume.",
)
async def add_keyphrase(
    location_id: int,
    category_id: str,
    payload: KeyphraseCreate,
    service: KeyphraseService,
) -> KeyphraseMutationResponse | JSONResponse:
    try:
        summary = await service.add_keyword_and_refresh(
            location_id,
            category_id,
            payload.keyword,
            payload.keyword_type,
        )
    except LocalSeoError as e:
        return _failure(e)
    return _summary_response(summary, KEYPHRASE_ADDED_MESSAGE)


@router.post(
    "/locations/{location_id}/categories/{category_id}/refresh-eligible",
    response_model=KeyphraseMutationResponse,
    summary="Refresh eligible keyphrases",
    description="Refresh every keyphrase whose cooldown has expired; the rest are skipped.",
)
async def refresh_eligible_keyphrases(
    location_id: int,
    category_id: str,
    service: KeyphraseService,
) -> KeyphraseMutationResponse | JSONResponse:
    try:
        summary = await service.refresh_eligible_keywords(location_id, category_id)
    except LocalSeoError as e:
        return _failure(e)
    return _summary_response(summary)


@router.post(
    f"{KEYWORD_PATH}/refresh",
    response_model=KeyphraseMutationResponse,
    summary="Refresh keyphrase",
    description="Refresh one keyphrase. Rejected with 409 while it is in cooldown.",
)
async def refresh_keyphrase(
    location_id: int,
    category_id: str,
    keyword_id: int,
    service: KeyphraseService,
) -> KeyphraseMutationResponse | JSONResponse:
    try:
        summary = await service.refresh_keyword(location_id, category_id, keyword_id)
    except LocalSeoError as e:
        return _failure(e)
    if summary.requested == 0:
        return _not_found()
    return _summary_response(summary)


@router.post(
    f"{KEYWORD_PATH}/main-term",
    response_model=KeyphraseMutationResponse,
    summary="Set main term",
    description="Promote a keyphrase matching the expected main keyword to main term.",
)
async def set_main_term(
    location_id: int,
    category_id: str,
    keyword_id: int,
    service: KeyphraseService,
) -> KeyphraseMutationResponse | JSONResponse:
    try:
        updated = await service.set_main_term(location_id, category_id, keyword_id)
    except LocalSeoError as e:
        return _failure(e)
    if not updated:
        return _not_found()
    return KeyphraseMutationResponse(success=True, message=MAIN_TERM_SET_MESSAGE)


@router.patch(
    f"{KEYWORD_PATH}/type",
    response_model=KeyphraseMutationResponse,
    summary="Set keyphrase type",
    description="Set a keyphrase to modifier or adjacent.",
)
async def set_keyphrase_type(
    location_id: int,
    category_id: str,
    keyword_id: int,
    payload: KeyphraseTypeUpdate,
    service: KeyphraseService,
) -> KeyphraseMutationResponse | JSONResponse:
    try:
        updated = await service.set_keyword_type(
            location_id,
            category_id,
            keyword_id,
            payload.keyword_type,
        )
    except LocalSeoError as e:
        return _failure(e)
    if not updated:
        return _not_found()
    return KeyphraseMutationResponse(success=True, message=KEYWORD_TYPE_SET_MESSAGE)


@router.delete(
    KEYWORD_PATH,
    response_model=KeyphraseMutationResponse,
    summary="Delete keyphrase",
    description="Delete a keyphrase and its monthly search volume.",
)
async def delete_keyphrase(
    location_id: int,
    category_id: str,
    keyword_id: int,
    service: KeyphraseService,
) -> KeyphraseMutationResponse | JSONResponse:
    try:
        deleted = await service.delete_keyword(location_id, category_id, keyword_id)
    except LocalSeoError as e:
        return _failure(e)
    if not deleted:
        return _not_found()
    return KeyphraseMutationResponse(success=True, message=KEYPHRASE_DELETED_MESSAGE)
