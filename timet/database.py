"""Database engine, session management and snapshot access."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import create_engine as sa_create_engine
from sqlalchemy import inspect, text
from sqlalchemy.exc import DatabaseError
from sqlalchemy.orm import Session, sessionmaker

from timet.exceptions import SnapshotCorruptedError
from timet.models import Base

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from sqlalchemy.engine import Engine

    from timet.config import Settings

logger = logging.getLogger(__name__)

# Columns added after the first release of the items table, with their DDL.
_LATE_COLUMNS = {
    "notes": "TEXT",
    "pomodoro": "INTEGER NOT NULL DEFAULT 0",
    "updated_at": "INTEGER",
    "created_at": "INTEGER",
    "deleted": "INTEGER NOT NULL DEFAULT 0",
}


def create_engine(settings: Settings) -> Engine:
    """Create the engine for the local database file.

    The default rollback journal is kept: the main file must hold every committed
    change because its bytes are hashed and uploaded as the sync snapshot.
    """
    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    return sa_create_engine(
        f"sqlite:///{settings.database_path}",
        echo=settings.debug,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create the session factory bound to ``engine``."""
    return sessionmaker(engine, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    """Create the items table, upgrading tables written by older versions.

    Performs no writes when the schema is already current.
    """
    Base.metadata.create_all(engine)
    existing = {column["name"] for column in inspect(engine).get_columns("items")}
    missing = [name for name in _LATE_COLUMNS if name not in existing]
    if not missing:
        return

    with engine.begin() as conn:
        for name in missing:
            conn.execute(text(f"ALTER TABLE items ADD COLUMN {name} {_LATE_COLUMNS[name]}"))
        if "updated_at" in missing or "created_at" in missing:
            conn.execute(
                text(
                    "UPDATE items SET "
                    "updated_at = COALESCE(updated_at, start), "
                    "created_at = COALESCE(created_at, start)"
                )
            )
    logger.info("Upgraded items table with columns: %s", ", ".join(missing))


@contextmanager
def open_snapshot(path: Path) -> Iterator[Session]:
    """Open a downloaded snapshot read-only and yield a session on it.

    Raises SnapshotCorruptedError when the file is not an SQLite database or has
    no ``items`` table.
    """
    uri = f"{path.resolve().as_uri()}?mode=ro"
    engine = sa_create_engine(
        "sqlite://",
        creator=lambda: sqlite3.connect(uri, uri=True),
    )
    try:
        try:
            with engine.connect() as conn:
                has_items = conn.execute(
                    text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'items'")
                ).first()
        except DatabaseError as exc:
            raise SnapshotCorruptedError(f"Cannot open snapshot {path}: {exc.orig}") from exc
        if has_items is None:
            raise SnapshotCorruptedError(f"Snapshot {path} has no items table")

        with Session(engine) as session:
            yield session
    finally:
        engine.dispose()
