"""Tests for the sync orchestrator against an in-memory object store."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING
from unittest.mock import patch

from tests.conftest import TEST_BUCKET, TEST_KEY, insert_items, make_item
from timet.services.reconcile_service import ItemChange, MergeAction, MergePlan, load_items
from timet.services.sync_service import SyncResult, SyncStatus, sync_database

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

    from sqlalchemy.orm import Session

    from tests.conftest import FakeObjectStore
    from timet.config import Settings
    from timet.schemas import TrackedItem

    MakeDatabase = Callable[[str, Iterable[TrackedItem]], Path]


def _sync(session: Session, store: FakeObjectStore, settings: Settings) -> SyncResult:
    return sync_database(session, store, TEST_BUCKET, settings.database_path, TEST_KEY)


class TestBootstrap:
    def test_uploads_local_file_when_bucket_is_empty(
        self, db_session: Session, fake_store: FakeObjectStore, test_settings: Settings
    ) -> None:
        insert_items(db_session, [make_item(1)])

        result = _sync(db_session, fake_store, test_settings)

        assert result.status == SyncStatus.BOOTSTRAPPED
        assert result.uploaded is True
        assert list(fake_store.buckets[TEST_BUCKET]) == [TEST_KEY]
        assert fake_store.get(TEST_BUCKET, TEST_KEY) == test_settings.database_path.read_bytes()

    def test_creates_bucket_first(
        self, db_session: Session, fake_store: FakeObjectStore, test_settings: Settings
    ) -> None:
        _sync(db_session, fake_store, test_settings)
        assert fake_store.calls[0] == ("create_bucket", TEST_BUCKET)

    def test_failed_listing_falls_back_to_upload(
        self, db_session: Session, fake_store: FakeObjectStore, test_settings: Settings
    ) -> None:
        fake_store.fail_listing = True
        result = _sync(db_session, fake_store, test_settings)
        assert result.status == SyncStatus.BOOTSTRAPPED
        assert len(fake_store.uploads()) == 1

    def test_other_keys_do_not_count_as_snapshot(
        self, db_session: Session, fake_store: FakeObjectStore, test_settings: Settings
    ) -> None:
        fake_store.put(TEST_BUCKET, "notes.txt", b"hello")
        result = _sync(db_session, fake_store, test_settings)
        assert result.status == SyncStatus.BOOTSTRAPPED
        assert fake_store.get(TEST_BUCKET, "notes.txt") == b"hello"


class TestUpToDate:
    def test_second_pass_is_a_no_op(
        self, db_session: Session, fake_store: FakeObjectStore, test_settings: Settings
    ) -> None:
        insert_items(db_session, [make_item(1), make_item(2)])
        _sync(db_session, fake_store, test_settings)
        before = test_settings.database_path.read_bytes()

        result = _sync(db_session, fake_store, test_settings)

        assert result.status == SyncStatus.UP_TO_DATE
        assert result.uploaded is False
        assert len(fake_store.uploads()) == 1
        assert test_settings.database_path.read_bytes() == before
        assert fake_store.get(TEST_BUCKET, TEST_KEY) == before

    def test_identical_snapshot_skips_reconcile(
        self, db_session: Session, fake_store: FakeObjectStore, test_settings: Settings
    ) -> None:
        fake_store.put(TEST_BUCKET, TEST_KEY, test_settings.database_path.read_bytes())

        with patch("timet.services.sync_service.reconcile") as mock_reconcile:
            result = _sync(db_session, fake_store, test_settings)

        mock_reconcile.assert_not_called()
        assert result.status == SyncStatus.UP_TO_DATE
        assert fake_store.uploads() == []


class TestMerge:
    def test_remote_newer_row_wins(
        self,
        db_session: Session,
        fake_store: FakeObjectStore,
        test_settings: Settings,
        make_database: MakeDatabase,
    ) -> None:
        insert_items(db_session, [make_item(5, tag="work", updated_at=100)])
        remote = make_database("remote.db", [make_item(5, tag="meeting", updated_at=200)])
        fake_store.put(TEST_BUCKET, TEST_KEY, remote.read_bytes())

        result = _sync(db_session, fake_store, test_settings)

        assert result.status == SyncStatus.MERGED
        assert result.uploaded is True
        assert load_items(db_session)[5].tag == "meeting"
        assert fake_store.get(TEST_BUCKET, TEST_KEY) == test_settings.database_path.read_bytes()

    def test_local_newer_row_is_uploaded(
        self,
        db_session: Session,
        fake_store: FakeObjectStore,
        test_settings: Settings,
        make_database: MakeDatabase,
    ) -> None:
        insert_items(db_session, [make_item(5, tag="work", updated_at=300)])
        remote = make_database("remote.db", [make_item(5, tag="meeting", updated_at=200)])
        fake_store.put(TEST_BUCKET, TEST_KEY, remote.read_bytes())

        result = _sync(db_session, fake_store, test_settings)

        assert result.status == SyncStatus.MERGED
        assert load_items(db_session)[5].tag == "work"
        assert result.plan is not None
        assert result.plan.ids_with(MergeAction.LOCAL_NEWER) == [5]
        assert fake_store.get(TEST_BUCKET, TEST_KEY) == test_settings.database_path.read_bytes()

    def test_union_of_both_sides(
        self,
        db_session: Session,
        fake_store: FakeObjectStore,
        test_settings: Settings,
        make_database: MakeDatabase,
    ) -> None:
        insert_items(db_session, [make_item(1), make_item(2, tag="local-two")])
        remote = make_database(
            "remote.db", [make_item(2, tag="remote-two"), make_item(3, tag="remote-three")]
        )
        fake_store.put(TEST_BUCKET, TEST_KEY, remote.read_bytes())

        _sync(db_session, fake_store, test_settings)

        merged = load_items(db_session)
        assert sorted(merged) == [1, 2, 3]
        assert merged[2].tag == "local-two"
        assert merged[3].tag == "remote-three"

    def test_merged_state_converges(
        self,
        db_session: Session,
        fake_store: FakeObjectStore,
        test_settings: Settings,
        make_database: MakeDatabase,
    ) -> None:
        insert_items(db_session, [make_item(1)])
        remote = make_database("remote.db", [make_item(2)])
        fake_store.put(TEST_BUCKET, TEST_KEY, remote.read_bytes())

        _sync(db_session, fake_store, test_settings)
        result = _sync(db_session, fake_store, test_settings)

        assert result.status == SyncStatus.UP_TO_DATE

    def test_remote_tombstone_hides_local_row(
        self,
        db_session: Session,
        fake_store: FakeObjectStore,
        test_settings: Settings,
        make_database: MakeDatabase,
    ) -> None:
        insert_items(db_session, [make_item(4, updated_at=100)])
        remote = make_database("remote.db", [make_item(4, updated_at=150, deleted=True)])
        fake_store.put(TEST_BUCKET, TEST_KEY, remote.read_bytes())

        result = _sync(db_session, fake_store, test_settings)

        assert load_items(db_session)[4].deleted is True
        assert "Remote item 4 is newer and deleted - updating local" in result.report_lines()


class TestCorruptedRemote:
    def test_garbage_snapshot_is_replaced(
        self, db_session: Session, fake_store: FakeObjectStore, test_settings: Settings
    ) -> None:
        insert_items(db_session, [make_item(1)])
        fake_store.put(TEST_BUCKET, TEST_KEY, b"this is not an sqlite database" * 100)

        result = _sync(db_session, fake_store, test_settings)

        assert result.status == SyncStatus.REMOTE_REPLACED
        assert result.uploaded is True
        assert result.error is not None
        assert fake_store.get(TEST_BUCKET, TEST_KEY) == test_settings.database_path.read_bytes()
        assert sorted(load_items(db_session)) == [1]

    def test_failed_download_is_treated_as_corrupted(
        self, db_session: Session, fake_store: FakeObjectStore, test_settings: Settings
    ) -> None:
        fake_store.put(TEST_BUCKET, TEST_KEY, b"unreachable")
        fake_store.fail_downloads = True

        result = _sync(db_session, fake_store, test_settings)

        assert result.status == SyncStatus.REMOTE_REPLACED
        assert fake_store.get(TEST_BUCKET, TEST_KEY) == test_settings.database_path.read_bytes()

    def test_snapshot_without_items_table_is_replaced(
        self,
        db_session: Session,
        fake_store: FakeObjectStore,
        test_settings: Settings,
        tmp_path: Path,
    ) -> None:
        other = tmp_path / "other.db"
        conn = sqlite3.connect(other)
        conn.execute("CREATE TABLE something_else (x INTEGER)")
        conn.commit()
        conn.close()
        fake_store.put(TEST_BUCKET, TEST_KEY, other.read_bytes())

        result = _sync(db_session, fake_store, test_settings)

        assert result.status == SyncStatus.REMOTE_REPLACED

    def test_failed_upload_is_reported(
        self, db_session: Session, fake_store: FakeObjectStore, test_settings: Settings
    ) -> None:
        fake_store.put(TEST_BUCKET, TEST_KEY, b"garbage")
        fake_store.fail_uploads = True

        result = _sync(db_session, fake_store, test_settings)

        assert result.status == SyncStatus.REMOTE_REPLACED
        assert result.uploaded is False
        assert fake_store.get(TEST_BUCKET, TEST_KEY) == b"garbage"


class TestSyncResultReport:
    def test_bootstrap_lines(self) -> None:
        result = SyncResult(SyncStatus.BOOTSTRAPPED, uploaded=True)
        assert result.report_lines() == ["No remote database found, uploading local database"]

    def test_up_to_date_lines(self) -> None:
        assert SyncResult(SyncStatus.UP_TO_DATE).report_lines() == ["Local database is up to date"]

    def test_merge_lines_skip_unchanged_items(self) -> None:
        plan = MergePlan(
            changes=[
                ItemChange(1, MergeAction.LOCAL_ONLY),
                ItemChange(2, MergeAction.NO_CHANGE),
                ItemChange(3, MergeAction.REMOTE_ADD),
            ]
        )
        result = SyncResult(SyncStatus.MERGED, uploaded=True, plan=plan)
        assert result.report_lines() == [
            "Differences detected between local and remote databases",
            "Local item 1 will be uploaded",
            "Adding remote item 3 to local",
            "Database sync completed",
        ]

    def test_corrupted_lines_include_error(self) -> None:
        result = SyncResult(SyncStatus.REMOTE_REPLACED, error="file is not a database")
        assert result.report_lines() == [
            "Differences detected between local and remote databases",
            "Error opening remote database: file is not a database",
            "Uploading local database to replace corrupted remote database",
        ]
