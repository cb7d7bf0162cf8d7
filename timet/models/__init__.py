"""SQLAlchemy ORM models for timet."""

from timet.models.base import Base
from timet.models.item import Item

__all__ = [
    "Base",
    "Item",
]
