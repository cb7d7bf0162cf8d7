"""Tracked item record shared by the local database and remote snapshots."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, field_validator

if TYPE_CHECKING:
    from collections.abc import Mapping

# Columns copied by inserts and overwrites during a merge; ``id`` is the join key.
ITEM_FIELDS = (
    "start",
    "end",
    "tag",
    "notes",
    "pomodoro",
    "updated_at",
    "created_at",
    "deleted",
)


class TrackedItem(BaseModel):
    """One row of the ``items`` table."""

    model_config = ConfigDict(frozen=True)

    id: int
    start: int
    end: int | None = None
    tag: str = ""
    notes: str | None = None
    pomodoro: int = 0
    updated_at: int = 0
    created_at: int = 0
    deleted: bool = False

    @field_validator("pomodoro", "updated_at", "created_at", mode="before")
    @classmethod
    def _null_as_zero(cls, value: Any) -> Any:
        # Rows written before these columns existed carry NULLs
        return 0 if value is None else value

    @field_validator("tag", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("deleted", mode="before")
    @classmethod
    def _null_as_false(cls, value: Any) -> Any:
        return False if value is None else value

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> TrackedItem:
        """Build a record from a name-keyed database row."""
        values = {name: row.get(name) for name in ITEM_FIELDS}
        return cls.model_validate({"id": row.get("id"), **values})

    def to_row(self, *, include_id: bool = True) -> dict[str, Any]:
        """Return column values ready for an INSERT or UPDATE statement."""
        values: dict[str, Any] = {name: getattr(self, name) for name in ITEM_FIELDS}
        values["deleted"] = int(self.deleted)
        if include_id:
            values["id"] = self.id
        return values

    @property
    def is_running(self) -> bool:
        return self.end is None and not self.deleted
