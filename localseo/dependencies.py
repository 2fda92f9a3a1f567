"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends

from localseo.services.keyphrases.service import CategoryLocationKeywordService


def get_keyphrase_service() -> CategoryLocationKeywordService:
    """Service bound to the application session factory and admin cooldown settings."""
    return CategoryLocationKeywordService()


KeyphraseService = Annotated[CategoryLocationKeywordService, Depends(get_keyphrase_service)]
