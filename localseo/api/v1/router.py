"""API v1 router aggregator."""

from fastapi import APIRouter

from localseo.api.v1 import keyphrases

api_router = APIRouter()

api_router.include_router(keyphrases.router, prefix="/keyphrases", tags=["Keyphrases"])
