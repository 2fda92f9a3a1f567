"""Keyphrase API endpoints."""

from localseo.api.v1.keyphrases.routes import router

__all__ = ["router"]
