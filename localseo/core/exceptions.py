"""Custom exception classes for the application."""

from typing import Any


class LocalSeoError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Validation Errors
class ValidationError(LocalSeoError):
    """Input was rejected before any state was written."""

    pass


class KeywordValidationError(ValidationError):
    """A keyphrase failed one of the add/promote/retype rules."""

    pass


class LocationNotFoundError(ValidationError):
    """Location (town) not found."""

    def __init__(self, location_id: int) -> None:
        super().__init__("Location was not found.", {"location_id": location_id})


class CategoryNotFoundError(ValidationError):
    """Business category not found."""

    def __init__(self, category_id: str) -> None:
        super().__init__("Category was not found.", {"category_id": category_id})


# Refresh Errors
class RefreshCooldownError(LocalSeoError):
    """One or more keywords requested for an enforced refresh are still cooling down."""

    def __init__(self, cooldown_days: int, keyword_ids: list[int]) -> None:
        super().__init__(
            f"One or more keywords are still in cooldown ({cooldown_days} days).",
            {"cooldown_days": cooldown_days, "keyword_ids": keyword_ids},
        )
        self.cooldown_days = cooldown_days
        self.keyword_ids = keyword_ids


class ConfigurationError(LocalSeoError):
    """Required configuration is missing."""

    pass


# External API Errors
class ExternalAPIError(LocalSeoError):
    """Error calling external API."""

    def __init__(self, api_name: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{api_name} API error: {message}", {"status_code": status_code})
        self.status_code = status_code


class APIKeyMissingError(ExternalAPIError):
    """API credentials not configured."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "API key not configured")
