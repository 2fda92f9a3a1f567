"""DataForSEO Google Ads search volume integration.

One POST per batch of keywords. Results are returned as tagged values so the
refresh pipeline can tell a failed batch from a failed keyword without
inspecting nullable fields.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from localseo.config import Settings, settings as default_settings
from localseo.core.exceptions import APIKeyMissingError, ConfigurationError
from localseo.services.keyphrases.text import normalize_keyword, normalize_keyword_key

logger = logging.getLogger(__name__)

API_NAME = "DataForSEO"
ERROR_BODY_MAX_LENGTH = 220


@dataclass(frozen=True, slots=True)
class MonthlySearch:
    """One month of provider-reported search volume."""

    year: int
    month: int
    search_volume: int


@dataclass(frozen=True, slots=True)
class KeywordVolumeOk:
    """Provider answered for a keyword. `search_volume` is None below the reporting threshold."""

    search_volume: int | None
    cpc: float | None = None
    competition: str | None = None
    competition_index: int | None = None
    low_top_of_page_bid: float | None = None
    high_top_of_page_bid: float | None = None
    monthly_searches: tuple[MonthlySearch, ...] = ()
    location_key: str | None = None
    language_key: str | None = None
    search_partners: bool | None = None
    status_code: int | None = None
    status_message: str | None = None


@dataclass(frozen=True, slots=True)
class KeywordVolumeError:
    """Provider reported a failure for a keyword."""

    status_code: int | None
    status_message: str | None


KeywordVolumeResult = KeywordVolumeOk | KeywordVolumeError


@dataclass(frozen=True, slots=True)
class SearchVolumeBatchOk:
    """Batch call succeeded; results are keyed by lower-cased keyword."""

    status_code: int | None
    status_message: str | None
    results: dict[str, KeywordVolumeResult] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SearchVolumeBatchError:
    """The whole batch failed (transport, HTTP status or envelope)."""

    status_code: int | None
    status_message: str | None


SearchVolumeBatch = SearchVolumeBatchOk | SearchVolumeBatchError


def _is_success_status(status_code: int | None) -> bool:
    return status_code is not None and 20000 <= status_code < 30000


def _truncate(value: str | None, max_length: int) -> str:
    text = (value or "").strip()
    return text[:max_length]


def _get_int(node: dict[str, Any], name: str) -> int | None:
    value = node.get(name)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _get_float(node: dict[str, Any], name: str) -> float | None:
    value = node.get(name)
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _get_str(node: dict[str, Any], name: str) -> str | None:
    value = node.get(name)
    return value if isinstance(value, str) else None


def _get_str_or_number(node: dict[str, Any], name: str) -> str | None:
    value = node.get(name)
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, int | float):
        return str(value)
    return None


def _get_bool(node: dict[str, Any], name: str) -> bool | None:
    value = node.get(name)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    return None


def parse_monthly_searches(raw: Any) -> tuple[MonthlySearch, ...]:
    """Parse `monthly_searches`, dropping incomplete items and invalid months."""
    if not isinstance(raw, list):
        return ()

    points: list[MonthlySearch] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        year = _get_int(item, "year")
        month = _get_int(item, "month")
        volume = _get_int(item, "search_volume")
        if year is None or month is None or volume is None or not 1 <= month <= 12:
            continue
        points.append(MonthlySearch(year=year, month=month, search_volume=volume))
    return tuple(points)


def parse_search_volume_response(
    payload: Any,
    requested_keywords: list[str],
) -> SearchVolumeBatch:
    """Map a DataForSEO search volume envelope onto tagged batch/keyword results."""
    if not isinstance(payload, dict):
        return SearchVolumeBatchError(None, "DataForSEO response was not a JSON object.")

    root_status_code = _get_int(payload, "status_code")
    root_status_message = _get_str(payload, "status_message") or "Unknown response status."
    if not _is_success_status(root_status_code):
        return SearchVolumeBatchError(root_status_code, root_status_message)

    tasks = payload.get("tasks")
    if not isinstance(tasks, list) or not tasks:
        return SearchVolumeBatchError(root_status_code, "DataForSEO response had no tasks.")

    results: dict[str, KeywordVolumeResult] = {}
    for task in tasks:
        if not isinstance(task, dict):
            continue
        task_status_code = _get_int(task, "status_code")
        task_status_message = _get_str(task, "status_message") or root_status_message

        if not _is_success_status(task_status_code):
            for keyword in requested_keywords:
                results.setdefault(
                    normalize_keyword_key(keyword),
                    KeywordVolumeError(task_status_code, task_status_message),
                )
            continue

        task_results = task.get("result")
        if not isinstance(task_results, list):
            continue

        for node in task_results:
            if not isinstance(node, dict):
                continue
            keyword = normalize_keyword(_get_str(node, "keyword"))
            if not keyword:
                continue

            results[normalize_keyword_key(keyword)] = KeywordVolumeOk(
                search_volume=_get_int(node, "search_volume"),
                cpc=_get_float(node, "cpc"),
                competition=_get_str(node, "competition"),
                competition_index=_get_int(node, "competition_index"),
                low_top_of_page_bid=_get_float(node, "low_top_of_page_bid"),
                high_top_of_page_bid=_get_float(node, "high_top_of_page_bid"),
                monthly_searches=parse_monthly_searches(node.get("monthly_searches")),
                location_key=_get_str_or_number(node, "location_code"),
                language_key=_get_str_or_number(node, "language_code"),
                search_partners=_get_bool(node, "search_partners"),
                status_code=task_status_code,
                status_message=task_status_message,
            )

    return SearchVolumeBatchOk(root_status_code, root_status_message, results)


class DataForSEOClient:
    """Client for the DataForSEO Google Ads search volume endpoint.

    Credentials, base URL and path are checked at construction so missing
    configuration fails before any network call.
    """

    def __init__(
        self,
        login: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
        config: Settings | None = None,
    ) -> None:
        self.config = config or default_settings
        self.login = (login or self.config.dataforseo_login or "").strip()
        self.password = (password or self.config.dataforseo_password or "").strip()
        self.timeout = timeout if timeout is not None else self.config.dataforseo_timeout_seconds
        self._client: httpx.AsyncClient | None = None

        if not self.login or not self.password:
            raise APIKeyMissingError(API_NAME)

        base_url = (self.config.dataforseo_base_url or "").strip().rstrip("/")
        if not base_url:
            raise ConfigurationError("DataForSEO base URL is missing.")
        path = (self.config.dataforseo_search_volume_path or "").strip()
        if not path:
            raise ConfigurationError("DataForSEO search volume path is missing.")
        self.search_volume_url = f"{base_url}{path if path.startswith('/') else '/' + path}"

    @property
    def _auth_header(self) -> str:
        """Generate Basic Auth header."""
        credentials = f"{self.login}:{self.password}"
        encoded = base64.b64encode(credentials.encode()).decode()
        return f"Basic {encoded}"

    async def __aenter__(self) -> DataForSEOClient:
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={
                "Authorization": self._auth_header,
                "Content-Type": "application/json",
            },
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client must be used as async context manager")
        return self._client

    def build_search_volume_task(self, keywords: list[str]) -> dict[str, Any]:
        """Build the single task payload with location/language targeting."""
        task: dict[str, Any] = {
            "keywords": keywords,
            "search_partners": self.config.search_volume_search_partners,
        }
        location_name = (self.config.search_volume_location_name or "").strip()
        if location_name:
            task["location_name"] = location_name
        else:
            task["location_code"] = self.config.search_volume_location_code

        language_name = (self.config.search_volume_language_name or "").strip()
        if language_name:
            task["language_name"] = language_name
        else:
            task["language_code"] = self.config.search_volume_language_code
        return task

    async def get_search_volume(self, keywords: list[str]) -> SearchVolumeBatch:
        """Fetch monthly search volume for a batch of keywords in one request.

        Args:
            keywords: Keyphrases; trimmed and de-duplicated case-insensitively.

        Returns:
            `SearchVolumeBatchOk` with per-keyword results keyed by lower-cased
            keyword, or `SearchVolumeBatchError` when the batch itself failed.
        """
        unique_keywords: list[str] = []
        seen: set[str] = set()
        for keyword in keywords:
            normalized = normalize_keyword(keyword)
            key = normalized.lower()
            if normalized and key not in seen:
                seen.add(key)
                unique_keywords.append(normalized)

        if not unique_keywords:
            return SearchVolumeBatchOk(20000, "No keywords provided.", {})

        logger.info(
            "DataForSEO search volume request",
            extra={"keyword_count": len(unique_keywords), "url": self.search_volume_url},
        )

        try:
            response = await self.client.post(
                self.search_volume_url,
                json=[self.build_search_volume_task(unique_keywords)],
            )
        except httpx.HTTPError as e:
            logger.warning("DataForSEO HTTP error", extra={"error": str(e)})
            return SearchVolumeBatchError(None, _truncate(str(e) or type(e).__name__, ERROR_BODY_MAX_LENGTH))

        if response.status_code < 200 or response.status_code >= 300:
            logger.warning(
                "DataForSEO non-success HTTP status",
                extra={"status_code": response.status_code},
            )
            return SearchVolumeBatchError(
                response.status_code,
                f"HTTP {response.status_code}: {_truncate(response.text, ERROR_BODY_MAX_LENGTH)}",
            )

        try:
            payload = response.json()
        except ValueError:
            return SearchVolumeBatchError(response.status_code, "DataForSEO response was not valid JSON.")

        batch = parse_search_volume_response(payload, unique_keywords)
        if isinstance(batch, SearchVolumeBatchError):
            logger.warning(
                "DataForSEO search volume batch failed",
                extra={"status_code": batch.status_code, "status": batch.status_message},
            )
        return batch
