"""Shared test fixtures for timet."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import create_engine as sa_create_engine
from sqlalchemy import insert

from timet.config import Settings
from timet.database import create_engine, create_session_factory, init_schema
from timet.models import Base, Item
from timet.schemas import TrackedItem
from timet.storage import RemoteObject

if TYPE_CHECKING:
    from collections.abc import Callable, Generator, Iterable

    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

TEST_BUCKET = "timet-test"
TEST_KEY = "timet.db"


def make_item(item_id: int, **overrides: Any) -> TrackedItem:
    """Build a finished item with sensible defaults."""
    values: dict[str, Any] = {
        "id": item_id,
        "start": 1_700_000_000 + item_id * 3600,
        "end": 1_700_000_000 + item_id * 3600 + 1800,
        "tag": f"tag{item_id}",
        "notes": None,
        "pomodoro": 0,
        "updated_at": 100,
        "created_at": 100,
        "deleted": False,
    }
    values.update(overrides)
    return TrackedItem(**values)


class FakeObjectStore:
    """In-memory ObjectStore that records calls."""

    def __init__(self) -> None:
        self.buckets: dict[str, dict[str, bytes]] = {}
        self.calls: list[tuple[str, ...]] = []
        self.fail_downloads = False
        self.fail_uploads = False
        self.fail_listing = False

    def create_bucket(self, bucket: str) -> bool:
        self.calls.append(("create_bucket", bucket))
        if bucket in self.buckets:
            return False
        self.buckets[bucket] = {}
        return True

    def list_objects(self, bucket: str) -> list[RemoteObject] | None:
        self.calls.append(("list_objects", bucket))
        if self.fail_listing:
            return None
        return [
            RemoteObject(key=key, size=len(data))
            for key, data in sorted(self.buckets.get(bucket, {}).items())
        ]

    def upload_file(self, bucket: str, local_path: Path, key: str) -> bool:
        self.calls.append(("upload_file", bucket, str(local_path), key))
        if self.fail_uploads:
            return False
        self.buckets.setdefault(bucket, {})[key] = Path(local_path).read_bytes()
        return True

    def download_file(self, bucket: str, key: str, dest_path: Path) -> bool:
        self.calls.append(("download_file", bucket, key, str(dest_path)))
        if self.fail_downloads or key not in self.buckets.get(bucket, {}):
            return False
        Path(dest_path).write_bytes(self.buckets[bucket][key])
        return True

    def put(self, bucket: str, key: str, data: bytes) -> None:
        self.buckets.setdefault(bucket, {})[key] = data

    def get(self, bucket: str, key: str) -> bytes:
        return self.buckets[bucket][key]

    def uploads(self) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[0] == "upload_file"]


@pytest.fixture
def test_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Settings pointing at a temporary database and log file."""
    for name in ("S3_ENDPOINT", "S3_ACCESS_KEY", "S3_SECRET_KEY", "DATABASE_PATH", "BUCKET_NAME"):
        monkeypatch.delenv(name, raising=False)
    return Settings(
        _env_file=None,
        database_path=tmp_path / "local" / "timet.db",
        log_file=tmp_path / "timet.log",
        s3_endpoint="http://localhost:9000",
        s3_access_key="test-access-key",
        s3_secret_key="test-secret-key",
        bucket_name=TEST_BUCKET,
    )


@pytest.fixture
def db_engine(test_settings: Settings) -> Generator[Engine]:
    """Engine on the local database file with the schema in place."""
    engine = create_engine(test_settings)
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine) -> Generator[Session]:
    """Session on the local database."""
    session_factory = create_session_factory(db_engine)
    with session_factory() as session:
        yield session


@pytest.fixture
def fake_store() -> FakeObjectStore:
    return FakeObjectStore()


def insert_items(session: Session, items: Iterable[TrackedItem]) -> None:
    """Insert items verbatim (ids and timestamps included) and commit."""
    for item in items:
        session.execute(insert(Item).values(**item.to_row()))
    session.commit()


@pytest.fixture
def make_database(tmp_path: Path) -> Callable[[str, Iterable[TrackedItem]], Path]:
    """Factory writing a standalone database file holding the given items."""

    def _make(name: str, items: Iterable[TrackedItem]) -> Path:
        path = tmp_path / "replicas" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        engine = sa_create_engine(f"sqlite:///{path}")
        try:
            Base.metadata.create_all(engine)
            with engine.begin() as conn:
                for item in items:
                    conn.execute(insert(Item).values(**item.to_row()))
        finally:
            engine.dispose()
        return path

    return _make
