"""Sync service: keep the local database and the remote snapshot in step.

The remote bucket holds a single object, the last synced copy of the database
file.  A sync pass downloads it, skips all work when it is byte-identical to the
local file, otherwise merges its rows into the local database (last writer wins on
``updated_at``) and uploads the merged local file as the new snapshot.

There is no locking: two replicas syncing at the same time may overwrite each
other's upload.  The model is eventually consistent, not linearizable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from timet.database import open_snapshot
from timet.exceptions import SnapshotCorruptedError
from timet.services.reconcile_service import MergeAction, MergePlan, reconcile
from timet.services.snapshot_service import downloaded_snapshot, snapshots_in_sync

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.orm import Session

    from timet.storage import ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_KEY = "timet.db"


class SyncStatus(StrEnum):
    """How a sync pass ended."""

    BOOTSTRAPPED = "bootstrapped"
    UP_TO_DATE = "up_to_date"
    MERGED = "merged"
    REMOTE_REPLACED = "remote_replaced"


_STATUS_MESSAGES = {
    SyncStatus.BOOTSTRAPPED: "No remote database found, uploading local database",
    SyncStatus.UP_TO_DATE: "Local database is up to date",
    SyncStatus.MERGED: "Database sync completed",
    SyncStatus.REMOTE_REPLACED: "Uploading local database to replace corrupted remote database",
}


@dataclass
class SyncResult:
    """Outcome of one sync pass."""

    status: SyncStatus
    uploaded: bool = False
    plan: MergePlan | None = None
    error: str | None = None

    @property
    def message(self) -> str:
        return _STATUS_MESSAGES[self.status]

    def report_lines(self) -> list[str]:
        """Status lines to show the user, in order."""
        lines: list[str] = []
        if self.status in (SyncStatus.MERGED, SyncStatus.REMOTE_REPLACED):
            lines.append("Differences detected between local and remote databases")
        if self.plan is not None:
            lines.extend(
                change.describe()
                for change in self.plan.changes
                if change.action != MergeAction.NO_CHANGE
            )
        if self.error is not None:
            lines.append(f"Error opening remote database: {self.error}")
        lines.append(self.message)
        return lines


def sync_database(
    local_session: Session,
    store: ObjectStore,
    bucket: str,
    local_db_path: Path,
    key: str = DEFAULT_SNAPSHOT_KEY,
) -> SyncResult:
    """Run one sync pass between the local database and ``bucket``/``key``.

    The local session must have no uncommitted changes: the database file on disk
    is what gets hashed and uploaded.
    """
    store.create_bucket(bucket)

    objects = store.list_objects(bucket)
    if not any(obj.key == key for obj in objects or []):
        logger.info("No snapshot '%s' in bucket '%s'; uploading local database", key, bucket)
        uploaded = store.upload_file(bucket, local_db_path, key)
        return SyncResult(SyncStatus.BOOTSTRAPPED, uploaded=uploaded)

    with downloaded_snapshot(store, bucket, key) as remote_path:
        if snapshots_in_sync(remote_path, local_db_path):
            logger.info("Snapshot '%s' matches local database", key)
            return SyncResult(SyncStatus.UP_TO_DATE)

        logger.info("Local database and snapshot '%s' differ; reconciling", key)
        try:
            with open_snapshot(remote_path) as remote_session:
                plan = reconcile(local_session, remote_session)
        except SnapshotCorruptedError as exc:
            logger.error("Remote snapshot unusable, replacing it with local database: %s", exc)
            uploaded = store.upload_file(bucket, local_db_path, key)
            return SyncResult(SyncStatus.REMOTE_REPLACED, uploaded=uploaded, error=str(exc))

    uploaded = store.upload_file(bucket, local_db_path, key)
    logger.info("Sync completed (uploaded=%s)", uploaded)
    return SyncResult(SyncStatus.MERGED, uploaded=uploaded, plan=plan)
