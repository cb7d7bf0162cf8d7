"""Typed records exchanged between the storage layer and services."""

from timet.schemas.item import ITEM_FIELDS, TrackedItem

__all__ = [
    "ITEM_FIELDS",
    "TrackedItem",
]
