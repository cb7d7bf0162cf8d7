"""Object-store gateway for S3-compatible storage.

Every operation is best effort: transport and service errors are logged and
reported through the return value instead of being raised, so a failed network
call never aborts a sync pass halfway.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

if TYPE_CHECKING:
    from timet.config import Settings

logger = logging.getLogger(__name__)

# Error codes meaning the bucket is already there; not a failure for create_bucket().
_BUCKET_EXISTS_CODES = frozenset({"BucketAlreadyExists", "BucketAlreadyOwnedByYou"})


@dataclass(frozen=True)
class RemoteObject:
    """An object listed in a bucket."""

    key: str
    last_modified: datetime | None = None
    size: int = 0


@runtime_checkable
class ObjectStore(Protocol):
    """Operations the sync engine needs from an object store."""

    def create_bucket(self, bucket: str) -> bool:
        """Create ``bucket``. Returns False if it already exists or on error."""
        ...

    def list_objects(self, bucket: str) -> list[RemoteObject] | None:
        """List objects in ``bucket``. Returns None on error."""
        ...

    def upload_file(self, bucket: str, local_path: Path, key: str) -> bool:
        """Upload ``local_path`` as ``key``. Returns True on success."""
        ...

    def download_file(self, bucket: str, key: str, dest_path: Path) -> bool:
        """Download ``key`` into ``dest_path``. Returns True on success."""
        ...


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3ObjectStore:
    """Object store backed by a boto3 S3 client (path-style addressing)."""

    def __init__(self, client: Any) -> None:
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> S3ObjectStore:
        """Build a store from settings.

        Raises ConfigurationError when any credential is missing.
        """
        settings.validate_storage_credentials()
        client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            region_name=settings.s3_region,
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )
        return cls(client)

    def create_bucket(self, bucket: str) -> bool:
        try:
            self.client.create_bucket(Bucket=bucket)
        except ClientError as exc:
            code = _error_code(exc)
            if code in _BUCKET_EXISTS_CODES:
                logger.info("Bucket '%s' already exists (%s)", bucket, code)
            else:
                logger.error("Error creating bucket '%s': %s", bucket, exc)
            return False
        except BotoCoreError as exc:
            logger.error("Error creating bucket '%s': %s", bucket, exc)
            return False
        logger.info("Bucket '%s' created", bucket)
        return True

    def list_objects(self, bucket: str) -> list[RemoteObject] | None:
        objects: list[RemoteObject] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket):
                for entry in page.get("Contents", []):
                    objects.append(
                        RemoteObject(
                            key=entry["Key"],
                            last_modified=entry.get("LastModified"),
                            size=entry.get("Size", 0),
                        )
                    )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Error listing objects in '%s': %s", bucket, exc)
            return None

        if not objects:
            logger.info("No objects found in '%s'", bucket)
        for obj in objects:
            logger.info("- %s (last modified: %s)", obj.key, obj.last_modified)
        return objects

    def upload_file(self, bucket: str, local_path: Path, key: str) -> bool:
        try:
            with open(local_path, "rb") as fh:
                self.client.put_object(Bucket=bucket, Key=key, Body=fh)
        except (ClientError, BotoCoreError, OSError) as exc:
            logger.error("Error uploading '%s' to '%s/%s': %s", local_path, bucket, key, exc)
            return False
        logger.info("File '%s' uploaded to '%s'", key, bucket)
        return True

    def download_file(self, bucket: str, key: str, dest_path: Path) -> bool:
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            data = response["Body"].read()
            Path(dest_path).write_bytes(data)
        except (ClientError, BotoCoreError, OSError) as exc:
            logger.error("Error downloading '%s/%s': %s", bucket, key, exc)
            return False
        logger.info("File '%s' downloaded from '%s' (%d bytes)", key, bucket, len(data))
        return True

    def delete_object(self, bucket: str, key: str) -> bool:
        """Delete ``key`` from ``bucket``. Returns True on success."""
        try:
            self.client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            logger.error("Error deleting '%s/%s': %s", bucket, key, exc)
            return False
        logger.info("Object '%s' deleted from '%s'", key, bucket)
        return True

    def delete_bucket(self, bucket: str) -> bool:
        """Delete every object in ``bucket`` and then the bucket itself."""
        objects = self.list_objects(bucket)
        if objects is None:
            return False
        for obj in objects:
            self.delete_object(bucket, obj.key)
        try:
            self.client.delete_bucket(Bucket=bucket)
        except (ClientError, BotoCoreError) as exc:
            logger.error("Error deleting bucket '%s': %s", bucket, exc)
            return False
        logger.info("Bucket '%s' deleted", bucket)
        return True
