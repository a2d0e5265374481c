"""
Storage Service
Artifact store adapter - supports Google Cloud Storage, S3, and local filesystem.

Locations are tagged values (Local / Remote / Unset) instead of strings whose
prefix has to be sniffed; the database keeps them as (storage_kind, storage_uri).
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Optional, Tuple, Union

import httpx

from studio.core.config import settings
from studio.workers.base import with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Local:
    """Object kept on local disk, addressed by its key under the storage root."""
    path: str
    kind: ClassVar[str] = "local"

    @property
    def uri(self) -> str:
        return self.path


@dataclass(frozen=True)
class Remote:
    """Object reachable by URL: http(s)://, s3:// or gs://."""
    url: str
    kind: ClassVar[str] = "remote"

    @property
    def uri(self) -> str:
        return self.url


@dataclass(frozen=True)
class Unset:
    kind: ClassVar[str] = "unset"

    @property
    def uri(self) -> None:
        return None


StorageLocation = Union[Local, Remote, Unset]
UNSET = Unset()


def location_from_columns(kind: Optional[str], uri: Optional[str]) -> StorageLocation:
    """Rebuild a location from its persisted (kind, uri) pair."""
    if not uri or kind in (None, Unset.kind):
        return UNSET
    if kind == Local.kind:
        return Local(uri)
    if kind == Remote.kind:
        return Remote(uri)
    raise ValueError(f"Unknown storage kind: {kind}")


def location_to_columns(location: StorageLocation) -> Tuple[str, Optional[str]]:
    return location.kind, location.uri


class StorageService:
    """Service for file storage operations."""

    def __init__(self, base_path: Optional[str] = None):
        # Priority: GCS > Local > S3; an explicit base_path forces local storage
        self.use_gcs = settings.USE_GCS and base_path is None
        self.use_local = base_path is not None or (settings.USE_LOCAL_STORAGE and not self.use_gcs)
        self._s3 = None

        if self.use_gcs:
            from google.cloud import storage
            self.gcs_client = storage.Client(project=settings.GCP_PROJECT_ID)
            self.bucket_name = settings.GCS_BUCKET
            self.bucket = self.gcs_client.bucket(self.bucket_name)
            logger.info(f"[Storage] Using Google Cloud Storage: {self.bucket_name}")

        elif self.use_local:
            self.base_path = Path(base_path or settings.LOCAL_STORAGE_PATH)
            self.base_path.mkdir(parents=True, exist_ok=True)
            logger.info(f"[Storage] Using local storage: {self.base_path}")

        else:
            self.bucket_name = settings.S3_BUCKET
            logger.info(f"[Storage] Using S3: {self.bucket_name}")

    @property
    def backend(self) -> str:
        if self.use_gcs:
            return "gcs"
        return "local" if self.use_local else "s3"

    @property
    def s3(self):
        """S3 client, created on first use (also needed to read s3:// references)."""
        if self._s3 is None:
            import boto3
            from botocore.config import Config
            self._s3 = boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT or None,
                aws_access_key_id=settings.S3_ACCESS_KEY or None,
                aws_secret_access_key=settings.S3_SECRET_KEY or None,
                region_name=settings.S3_REGION,
                config=Config(signature_version="s3v4")
            )
        return self._s3

    # ------------------------------------------------------------------ save

    async def save(self, data: bytes, key: str, content_type: str = "image/png") -> StorageLocation:
        """Persist bytes under a logical key and return where they landed."""
        if self.use_gcs:
            blob = self.bucket.blob(key)
            await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
            return Remote(f"gs://{self.bucket_name}/{key}")
        elif self.use_local:
            await asyncio.to_thread(self._write_local, key, data)
            return Local(key)
        else:
            await asyncio.to_thread(
                self.s3.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
            return Remote(f"s3://{self.bucket_name}/{key}")

    def _local_path(self, key: str) -> Path:
        file_path = (self.base_path / key).resolve()
        if not file_path.is_relative_to(self.base_path.resolve()):
            raise ValueError(f"Path escapes storage root: {key}")
        return file_path

    def _write_local(self, key: str, data: bytes) -> None:
        file_path = self._local_path(key)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "wb") as f:
            f.write(data)

    def _delete_local(self, key: str) -> None:
        file_path = self._local_path(key)
        if file_path.is_file():
            file_path.unlink()

    # ---------------------------------------------------------------- delete

    async def delete(self, location: StorageLocation) -> bool:
        """Delete a stored object. Returns False instead of raising on failure."""
        try:
            if isinstance(location, Local):
                await asyncio.to_thread(self._delete_local, location.path)
                logger.info(f"[Storage] Deleted file: {location.path}")
                return True
            if isinstance(location, Remote):
                if location.url.startswith("gs://"):
                    bucket, key = self._split_bucket_url(location.url, "gs://")
                    from google.cloud import storage
                    client = self.gcs_client if self.use_gcs else storage.Client(project=settings.GCP_PROJECT_ID)
                    await asyncio.to_thread(client.bucket(bucket).blob(key).delete)
                elif location.url.startswith("s3://"):
                    bucket, key = self._split_bucket_url(location.url, "s3://")
                    await asyncio.to_thread(self.s3.delete_object, Bucket=bucket, Key=key)
                else:
                    logger.warning(f"[Storage] Not deleting external URL: {location.url}")
                    return False
                logger.info(f"[Storage] Deleted object: {location.url}")
                return True
            return False
        except Exception as e:
            logger.warning(f"[Storage] Could not delete {location}: {e}")
            return False

    # ------------------------------------------------------------------ read

    async def get_file(self, key: str) -> bytes:
        """Get file contents by key from the configured backend."""
        if self.use_gcs:
            return await asyncio.to_thread(self.bucket.blob(key).download_as_bytes)
        elif self.use_local:
            return await asyncio.to_thread(self._read_local, key)
        else:
            return await asyncio.to_thread(self._read_s3, self.bucket_name, key)

    def _read_local(self, key: str) -> bytes:
        with open(self._local_path(key), "rb") as f:
            return f.read()

    def _read_s3(self, bucket: str, key: str) -> bytes:
        response = self.s3.get_object(Bucket=bucket, Key=key)
        return response["Body"].read()

    async def read(self, location: StorageLocation) -> bytes:
        """Materialize any location to bytes."""
        if isinstance(location, Local):
            return await self.get_file(location.path)
        if isinstance(location, Remote):
            return await self.download_bytes(location.url)
        raise ValueError("Storage location is unset")

    async def download_bytes(self, url: str) -> bytes:
        """
        Download file bytes from a remote URL.

        Args:
            url: s3://, gs://, /files/ (API proxy) or http(s):// URL

        Returns:
            File bytes
        """
        if url.startswith("/files/"):
            return await self.get_file(url.replace("/files/", "", 1))

        elif url.startswith("s3://"):
            bucket, key = self._split_bucket_url(url, "s3://")
            return await asyncio.to_thread(self._read_s3, bucket, key)

        elif url.startswith("gs://"):
            bucket, key = self._split_bucket_url(url, "gs://")
            if self.use_gcs and bucket == self.bucket_name:
                return await asyncio.to_thread(self.bucket.blob(key).download_as_bytes)
            from google.cloud import storage
            client = storage.Client(project=settings.GCP_PROJECT_ID)
            return await asyncio.to_thread(client.bucket(bucket).blob(key).download_as_bytes)

        elif url.startswith(("http://", "https://")):
            return await self._fetch_http(url)

        raise ValueError(f"Unsupported remote URL: {url}")

    @with_retry(
        max_retries=settings.REFERENCE_DOWNLOAD_RETRIES,
        retry_delay=0.5,
        retryable_exceptions=(httpx.TransportError,),
    )
    async def _fetch_http(self, url: str) -> bytes:
        async with httpx.AsyncClient(follow_redirects=True) as client:
            response = await client.get(url, timeout=60.0)
            response.raise_for_status()
            return response.content

    @staticmethod
    def _split_bucket_url(url: str, scheme: str) -> Tuple[str, str]:
        parts = url[len(scheme):].split("/", 1)
        if len(parts) < 2 or not parts[1]:
            raise ValueError(f"Invalid bucket URL: {url}")
        return parts[0], parts[1]

    def get_public_url(self, location: StorageLocation) -> Optional[str]:
        """URL the frontend can fetch: API proxy for stored objects, as-is for http."""
        if isinstance(location, Local):
            return f"/files/{location.path}"
        if isinstance(location, Remote):
            if location.url.startswith(("http://", "https://")):
                return location.url
            for scheme in ("gs://", "s3://"):
                if location.url.startswith(scheme):
                    return f"/files/{self._split_bucket_url(location.url, scheme)[1]}"
        return None


__all__ = [
    "Local",
    "Remote",
    "Unset",
    "UNSET",
    "StorageLocation",
    "StorageService",
    "location_from_columns",
    "location_to_columns",
]
