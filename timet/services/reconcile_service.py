"""Row reconciliation: last-writer-wins merge of a remote snapshot into the local database.

Rows are matched by ``id`` and resolved by ``updated_at`` alone.  The merge only
ever writes to the local database; rows where local wins reach the remote side
when the merged file is uploaded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import ValidationError
from sqlalchemy import insert, text, update
from sqlalchemy.exc import DatabaseError

from timet.exceptions import SnapshotCorruptedError
from timet.models import Item
from timet.schemas import TrackedItem

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class MergeAction(StrEnum):
    """Outcome for one item id."""

    REMOTE_ADD = "remote_add"
    REMOTE_NEWER = "remote_newer"
    LOCAL_ONLY = "local_only"
    LOCAL_NEWER = "local_newer"
    NO_CHANGE = "no_change"


@dataclass
class ItemChange:
    """A single entry in the merge plan."""

    item_id: int
    action: MergeAction
    deleted: bool = False

    def describe(self) -> str:
        """Human-readable status line for this item."""
        and_deleted = " and deleted" if self.deleted else ""
        if self.action == MergeAction.REMOTE_ADD:
            return f"Adding remote item {self.item_id} to local"
        if self.action == MergeAction.REMOTE_NEWER:
            return f"Remote item {self.item_id} is newer{and_deleted} - updating local"
        if self.action == MergeAction.LOCAL_ONLY:
            return f"Local item {self.item_id} will be uploaded"
        if self.action == MergeAction.LOCAL_NEWER:
            return f"Local item {self.item_id} is newer{and_deleted} - will be uploaded"
        return f"Item {self.item_id} is unchanged"


@dataclass
class MergePlan:
    """The computed merge plan."""

    to_insert: list[TrackedItem] = field(default_factory=list)
    to_update: list[TrackedItem] = field(default_factory=list)
    changes: list[ItemChange] = field(default_factory=list)

    @property
    def modifies_local(self) -> bool:
        return bool(self.to_insert or self.to_update)

    def ids_with(self, action: MergeAction) -> list[int]:
        return [change.item_id for change in self.changes if change.action == action]


def load_items(session: Session) -> dict[int, TrackedItem]:
    """Load every row of ``items`` (tombstones included), indexed by id."""
    result = session.execute(text("SELECT * FROM items ORDER BY updated_at DESC"))
    return {row["id"]: TrackedItem.from_row(row) for row in result.mappings()}


def compute_merge_plan(
    local: dict[int, TrackedItem],
    remote: dict[int, TrackedItem],
) -> MergePlan:
    """Compute the merge plan for two item sets keyed by id.

    Ties on ``updated_at`` keep the local row.
    """
    plan = MergePlan()

    for item_id in sorted(local.keys() | remote.keys()):
        local_item = local.get(item_id)
        remote_item = remote.get(item_id)

        if remote_item is None:
            plan.changes.append(
                ItemChange(item_id, MergeAction.LOCAL_ONLY, deleted=local[item_id].deleted)
            )
        elif local_item is None:
            plan.to_insert.append(remote_item)
            plan.changes.append(
                ItemChange(item_id, MergeAction.REMOTE_ADD, deleted=remote_item.deleted)
            )
        elif remote_item.updated_at > local_item.updated_at:
            plan.to_update.append(remote_item)
            plan.changes.append(
                ItemChange(item_id, MergeAction.REMOTE_NEWER, deleted=remote_item.deleted)
            )
        elif local_item.updated_at > remote_item.updated_at:
            plan.changes.append(
                ItemChange(item_id, MergeAction.LOCAL_NEWER, deleted=local_item.deleted)
            )
        else:
            plan.changes.append(ItemChange(item_id, MergeAction.NO_CHANGE))

    return plan


def apply_merge_plan(session: Session, plan: MergePlan) -> None:
    """Write the plan's inserts and overwrites to the local database and commit."""
    for item in plan.to_insert:
        session.execute(insert(Item).values(**item.to_row()))
    for item in plan.to_update:
        session.execute(
            update(Item).where(Item.id == item.id).values(**item.to_row(include_id=False))
        )
    session.commit()
    logger.info(
        "Applied merge plan: %d inserted, %d updated",
        len(plan.to_insert),
        len(plan.to_update),
    )


def reconcile(local_session: Session, remote_session: Session) -> MergePlan:
    """Merge the remote snapshot's items into the local database.

    Raises SnapshotCorruptedError when the remote items cannot be read.
    """
    try:
        remote = load_items(remote_session)
    except (DatabaseError, ValidationError) as exc:
        raise SnapshotCorruptedError(f"Cannot read remote items: {exc}") from exc
    local = load_items(local_session)
    logger.info("Reconciling %d local and %d remote items", len(local), len(remote))

    plan = compute_merge_plan(local, remote)
    for change in plan.changes:
        if change.action != MergeAction.NO_CHANGE:
            logger.info(change.describe())
    apply_merge_plan(local_session, plan)
    return plan
