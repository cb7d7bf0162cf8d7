"""Application-level exception types.

Convention:
- ``ConfigurationError`` - for settings problems that must stop the command before
  any work starts (missing object-storage credentials, etc.).  The CLI prints the
  message and exits with status 1.
- ``SnapshotCorruptedError`` - for a downloaded remote snapshot that cannot be read
  as a timet database.  The sync orchestrator catches it and replaces the remote
  snapshot with the local file.
- ``ValueError`` - for user input validation errors (bad times, unknown fields).
  Safe to show verbatim.
"""

from __future__ import annotations


class ConfigurationError(Exception):
    """Raised when required settings are missing or invalid."""


class SnapshotCorruptedError(Exception):
    """Raised when a remote snapshot file is not a usable timet database."""


class ItemNotFoundError(LookupError):
    """Raised when a tracked item id does not exist (or is deleted)."""

    def __init__(self, item_id: int) -> None:
        super().__init__(f"No item with id {item_id}")
        self.item_id = item_id
