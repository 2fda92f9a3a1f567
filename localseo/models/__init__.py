"""SQLAlchemy database models."""
from dotenv import load_dotenv
from localseo.models.base import Base
from localseo.models.keyword import CategoryLocationKeyword, CategoryLocationSearchVolume
from localseo.models.location import AdminSettings, BusinessCategory, County, Town


load_dotenv()

__all__ = [
    "Base",
    "County",
    "Town",
    "BusinessCategory",
    "AdminSettings",
    "CategoryLocationKeyword",
    "CategoryLocationSearchVolume",
]
