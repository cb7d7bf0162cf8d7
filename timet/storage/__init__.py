"""Remote storage for database snapshots."""

from timet.storage.object_store import ObjectStore, RemoteObject, S3ObjectStore

__all__ = ["ObjectStore", "RemoteObject", "S3ObjectStore"]
