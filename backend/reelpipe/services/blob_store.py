"""
Blob storage for generated images, narration audio and video clips.

Two backends share one async interface: a local filesystem store with
path traversal protection (development and tests) and an S3 store backed
by boto3 (production). Every operation addresses the working bucket unless
a bucket is named explicitly.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from reelpipe.config import StorageConfig
from reelpipe.errors import BlobNotFoundError, StorageError

logger = logging.getLogger(__name__)


@dataclass
class BlobObject:
    """Bytes plus the content type and metadata stored alongside them."""

    key: str
    body: bytes
    content_type: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)


class BlobStore(ABC):
    """Key-value binary object store."""

    def __init__(self, default_bucket: str):
        self.default_bucket = default_bucket

    @abstractmethod
    async def get(self, key: str, bucket: Optional[str] = None) -> BlobObject:
        """Fetch an object.

        Raises:
            BlobNotFoundError: If no object exists at ``key``.
        """
        ...

    @abstractmethod
    async def put(
        self,
        key: str,
        body: bytes,
        *,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
        bucket: Optional[str] = None,
    ) -> None:
        """Store ``body`` at ``key``, overwriting any existing object."""
        ...

    @abstractmethod
    async def delete(self, key: str, bucket: Optional[str] = None) -> None:
        """Delete an object; deleting a missing key is not an error."""
        ...

    @abstractmethod
    async def copy(
        self,
        source_key: str,
        dest_key: str,
        dest_bucket: Optional[str] = None,
        *,
        source_bucket: Optional[str] = None,
    ) -> None:
        """Copy an object, keeping its content type and metadata."""
        ...

    def _bucket(self, bucket: Optional[str]) -> str:
        return bucket or self.default_bucket


class LocalBlobStore(BlobStore):
    """
    Filesystem blob store.

    Layout:
    - {root}/{bucket}/{key} - object bytes
    - {root}/.meta/{bucket}/{key}.json - content type and metadata

    Keys may contain slashes but may not escape their bucket directory.
    """

    def __init__(self, root: str | Path, default_bucket: str):
        super().__init__(default_bucket)
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, base: Path, key: str, suffix: str = "") -> Path:
        base = base.resolve()
        path = (base / f"{key}{suffix}").resolve()

        # Path traversal protection
        if not key or not path.is_relative_to(base) or path == base:
            raise StorageError(f"Invalid blob key: {key!r}")
        return path

    def _data_path(self, bucket: str, key: str) -> Path:
        return self._resolve(self.root / bucket, key)

    def _meta_path(self, bucket: str, key: str) -> Path:
        return self._resolve(self.root / ".meta" / bucket, key, ".json")

    def path_for(self, key: str, bucket: Optional[str] = None) -> Path:
        """Filesystem location of an object (it may not exist yet)."""
        return self._data_path(self._bucket(bucket), key)

    async def get(self, key: str, bucket: Optional[str] = None) -> BlobObject:
        bucket = self._bucket(bucket)
        data_path = self._data_path(bucket, key)
        meta_path = self._meta_path(bucket, key)

        def _read() -> BlobObject:
            if not data_path.is_file():
                raise BlobNotFoundError(key, bucket)
            meta = {}
            if meta_path.is_file():
                meta = json.loads(meta_path.read_text())
            return BlobObject(
                key=key,
                body=data_path.read_bytes(),
                content_type=meta.get("content_type"),
                metadata=meta.get("metadata", {}),
            )

        return await asyncio.to_thread(_read)

    async def put(
        self,
        key: str,
        body: bytes,
        *,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
        bucket: Optional[str] = None,
    ) -> None:
        bucket = self._bucket(bucket)
        data_path = self._data_path(bucket, key)
        meta_path = self._meta_path(bucket, key)
        meta = {"content_type": content_type, "metadata": dict(metadata or {})}

        def _write() -> None:
            data_path.parent.mkdir(parents=True, exist_ok=True)
            meta_path.parent.mkdir(parents=True, exist_ok=True)
            data_path.write_bytes(body)
            meta_path.write_text(json.dumps(meta))

        await asyncio.to_thread(_write)
        logger.debug(f"Stored {bucket}/{key} ({len(body)} bytes)")

    async def delete(self, key: str, bucket: Optional[str] = None) -> None:
        bucket = self._bucket(bucket)
        data_path = self._data_path(bucket, key)
        meta_path = self._meta_path(bucket, key)

        def _remove() -> None:
            data_path.unlink(missing_ok=True)
            meta_path.unlink(missing_ok=True)

        await asyncio.to_thread(_remove)

    async def copy(
        self,
        source_key: str,
        dest_key: str,
        dest_bucket: Optional[str] = None,
        *,
        source_bucket: Optional[str] = None,
    ) -> None:
        source = await self.get(source_key, bucket=source_bucket)
        await self.put(
            dest_key,
            source.body,
            content_type=source.content_type,
            metadata=source.metadata,
            bucket=dest_bucket,
        )


def _s3_client(region: Optional[str]):
    import boto3
    from botocore.config import Config as BotoConfig

    # Retries help with transient S3 throttling.
    config = BotoConfig(
        retries={"max_attempts": 10, "mode": "standard"},
        connect_timeout=10,
        read_timeout=300,
    )
    return boto3.client("s3", region_name=region, config=config)


class S3BlobStore(BlobStore):
    """Blob store backed by Amazon S3 via boto3.

    boto3 is synchronous, so every call runs in a worker thread. Missing
    keys raise BlobNotFoundError; every other botocore failure (access
    denied, throttling after retries, connection errors) raises StorageError.
    """

    def __init__(self, default_bucket: str, region: Optional[str] = None, client=None):
        super().__init__(default_bucket)
        self._client = client or _s3_client(region)

    async def _call(self, fn, what: str, key: str, bucket: str):
        try:
            return await asyncio.to_thread(fn)
        except self._client.exceptions.NoSuchKey as exc:
            raise BlobNotFoundError(key, bucket) from exc
        except (BotoCoreError, ClientError) as exc:
            logger.error(f"S3 {what} s3://{bucket}/{key} failed: {exc}")
            raise StorageError(f"S3 {what} failed for {bucket}/{key}: {exc}") from exc

    async def get(self, key: str, bucket: Optional[str] = None) -> BlobObject:
        bucket = self._bucket(bucket)

        def _get() -> BlobObject:
            response = self._client.get_object(Bucket=bucket, Key=key)
            return BlobObject(
                key=key,
                body=response["Body"].read(),
                content_type=response.get("ContentType"),
                metadata=response.get("Metadata", {}),
            )

        return await self._call(_get, "get", key, bucket)

    async def put(
        self,
        key: str,
        body: bytes,
        *,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
        bucket: Optional[str] = None,
    ) -> None:
        params = {
            "Bucket": self._bucket(bucket),
            "Key": key,
            "Body": body,
            "Metadata": dict(metadata or {}),
        }
        if content_type:
            params["ContentType"] = content_type
        await self._call(
            lambda: self._client.put_object(**params), "put", key, params["Bucket"]
        )
        logger.debug(f"Uploaded s3://{params['Bucket']}/{key} ({len(body)} bytes)")

    async def delete(self, key: str, bucket: Optional[str] = None) -> None:
        bucket = self._bucket(bucket)
        await self._call(
            lambda: self._client.delete_object(Bucket=bucket, Key=key), "delete", key, bucket
        )

    async def copy(
        self,
        source_key: str,
        dest_key: str,
        dest_bucket: Optional[str] = None,
        *,
        source_bucket: Optional[str] = None,
    ) -> None:
        source_bucket = self._bucket(source_bucket)
        dest_bucket = self._bucket(dest_bucket)

        def _copy() -> None:
            self._client.copy_object(
                Bucket=dest_bucket,
                Key=dest_key,
                CopySource={"Bucket": source_bucket, "Key": source_key},
                MetadataDirective="COPY",
            )

        await self._call(_copy, "copy", source_key, source_bucket)


def create_blob_store(storage: StorageConfig) -> BlobStore:
    """Build the blob store selected by ``storage.blob_backend``."""
    if storage.blob_backend == "s3":
        return S3BlobStore(storage.working_bucket, region=storage.aws_region)
    return LocalBlobStore(storage.blob_root, storage.working_bucket)
