"""Snapshot transfer and comparison for the database file."""

from __future__ import annotations

import hashlib
import logging
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from timet.storage import ObjectStore

logger = logging.getLogger(__name__)


def hash_file(path: Path) -> str:
    """Compute MD5 hash of a file."""
    md5 = hashlib.md5(usedforsecurity=False)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            md5.update(chunk)
    return md5.hexdigest()


def snapshots_in_sync(remote_path: Path, local_path: Path) -> bool:
    """Return True when both snapshot files have identical contents."""
    remote_hash = hash_file(remote_path)
    local_hash = hash_file(local_path)
    logger.debug("Snapshot digests: remote=%s local=%s", remote_hash, local_hash)
    return remote_hash == local_hash


@contextmanager
def downloaded_snapshot(store: ObjectStore, bucket: str, key: str) -> Iterator[Path]:
    """Download ``key`` into a temporary file and yield its path.

    The file is removed on exit, whatever the outcome.  A failed download leaves
    the file empty; opening it as a snapshot then fails as corrupted.
    """
    with tempfile.NamedTemporaryFile(prefix="timet-remote-", suffix=".db", delete=False) as tmp:
        temp_path = Path(tmp.name)
    try:
        store.download_file(bucket, key, temp_path)
        yield temp_path
    finally:
        temp_path.unlink(missing_ok=True)
        logger.debug("Removed temporary snapshot %s", temp_path)
