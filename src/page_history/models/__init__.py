"""SQLAlchemy models."""
from page_history.models.base import Base, UUIDv7Mixin
from page_history.models.diff_tracking import DiffTracking
from page_history.models.page import PageContent, PageData

__all__ = [
    "Base",
    "DiffTracking",
    "PageContent",
    "PageData",
    "UUIDv7Mixin",
]
