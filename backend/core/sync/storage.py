"""
Content Store

Reads and deletes raw site files from object storage. Two backends sit
behind the same interface and are picked once, at construction time:

- S3ContentStore: any S3-compatible service (AWS, MinIO, R2 S3 API)
- LocalBucketContentStore: a bucket mounted as a local directory

Both check the object size before the body is read and refuse anything
above the configured ceiling, so an oversized upload never lands in memory.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from backend.core.config import Settings, DEFAULT_MAX_FILE_BYTES
from backend.core.sync.errors import SyncError

logger = logging.getLogger(__name__)

# S3 error codes meaning "no such object"
_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class StorageError(SyncError):
    """Object storage could not be read or written."""
    pass


class ObjectNotFoundError(StorageError):
    """Requested object does not exist."""
    pass


class FileTooLargeError(StorageError):
    """Object exceeds the size ceiling."""

    def __init__(self, key: str, size: int, limit: int):
        super().__init__(f"File too large: {size}")
        self.key = key
        self.size = size
        self.limit = limit


@dataclass
class FetchedObject:
    """Content of a fetched object."""
    body: bytes
    size: int


class ContentStore(ABC):
    """Read/delete access to raw site files."""

    def __init__(self, max_file_bytes: int = DEFAULT_MAX_FILE_BYTES):
        self.max_file_bytes = max_file_bytes

    @abstractmethod
    async def fetch(self, key: str) -> FetchedObject:
        """
        Fetch an object.

        Raises:
            ObjectNotFoundError: If the object does not exist
            FileTooLargeError: If the object is larger than max_file_bytes
            StorageError: On any other backend failure
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing object is not an error."""

    def _check_size(self, key: str, size: int) -> None:
        if size > self.max_file_bytes:
            raise FileTooLargeError(key, size, self.max_file_bytes)


class S3ContentStore(ContentStore):
    """
    Content store backed by an S3-compatible bucket.

    boto3 is synchronous, so every call runs in the default executor.
    """

    def __init__(self, client, bucket: str, max_file_bytes: int = DEFAULT_MAX_FILE_BYTES):
        super().__init__(max_file_bytes)
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ContentStore":
        if not settings.s3_bucket:
            raise ValueError("s3_bucket is required for the s3 storage backend")

        client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint,
            region_name=settings.s3_region,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            config=BotoConfig(
                s3={"addressing_style": "path" if settings.s3_force_path_style else "auto"}
            ),
        )
        return cls(client, settings.s3_bucket, settings.max_file_bytes)

    async def fetch(self, key: str) -> FetchedObject:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._fetch_sync, key)

    def _fetch_sync(self, key: str) -> FetchedObject:
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
            size = head["ContentLength"]
            logger.debug(f"S3 head {key}: {size} bytes")
            self._check_size(key, size)

            resp = self.client.get_object(Bucket=self.bucket, Key=key)
            # The object may have been replaced between head and get
            self._check_size(key, resp.get("ContentLength", size))
            body = resp["Body"].read()
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                raise ObjectNotFoundError(f"Object not found: {key}") from e
            raise StorageError(f"Cannot read object {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Cannot read object {key}: {e}") from e

        return FetchedObject(body=body, size=len(body))

    async def delete(self, key: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._delete_sync, key)

    def _delete_sync(self, key: str) -> None:
        # S3 DeleteObject already succeeds for missing keys
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return
            raise StorageError(f"Cannot delete object {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Cannot delete object {key}: {e}") from e
        logger.info(f"Deleted from S3: {key}")


class LocalBucketContentStore(ContentStore):
    """
    Content store backed by a bucket mounted as a directory.

    Object keys map to files below the bucket root.
    """

    def __init__(self, root: Path, max_file_bytes: int = DEFAULT_MAX_FILE_BYTES):
        super().__init__(max_file_bytes)
        self.root = Path(root).resolve()

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalBucketContentStore":
        if not settings.local_bucket_path:
            raise ValueError("local_bucket_path is required for the local storage backend")
        return cls(Path(settings.local_bucket_path), settings.max_file_bytes)

    def _resolve(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path != self.root and self.root not in path.parents:
            raise StorageError(f"Key escapes bucket root: {key}")
        return path

    async def fetch(self, key: str) -> FetchedObject:
        path = self._resolve(key)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_file, key, path)

    def _read_file(self, key: str, path: Path) -> FetchedObject:
        try:
            size = path.stat().st_size
            self._check_size(key, size)
            body = path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise ObjectNotFoundError(f"Object not found: {key}")
        except PermissionError:
            raise StorageError(f"Permission denied: {key}")
        except OSError as e:
            raise StorageError(f"Cannot read object {key}: {e}")
        return FetchedObject(body=body, size=len(body))

    async def delete(self, key: str) -> None:
        path = self._resolve(key)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: path.unlink(missing_ok=True))
        except OSError as e:
            raise StorageError(f"Cannot delete object {key}: {e}")
        logger.info(f"Deleted from local bucket: {key}")


def create_content_store(settings: Settings, client: Optional[object] = None) -> ContentStore:
    """
    Build the content store for this deployment.

    Args:
        settings: Application settings (storage_backend selects the variant)
        client: Pre-built boto3 S3 client to reuse (s3 backend only)

    Returns:
        ContentStore implementation
    """
    if settings.storage_backend == "local":
        return LocalBucketContentStore.from_settings(settings)
    if client is not None:
        if not settings.s3_bucket:
            raise ValueError("s3_bucket is required for the s3 storage backend")
        return S3ContentStore(client, settings.s3_bucket, settings.max_file_bytes)
    return S3ContentStore.from_settings(settings)
