import asyncio
from abc import ABC, abstractmethod
from datetime import timedelta
from functools import lru_cache, partial
from pathlib import Path
from typing import BinaryIO, Optional

import aiofiles
import aiofiles.os
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from socialize.core.config import settings
from socialize.core.errors import StorageError, ValidationError
from socialize.core.security import DOWNLOAD_TOKEN_TYPE, create_jwt_token, fingerprint, verify_jwt_token
from socialize.utils.logger import get_logger
from socialize.utils.metrics import storage_operations

logger = get_logger("services.storage_service")

CHUNK_SIZE = 1024 * 1024


class UploadTooLarge(Exception):
    pass


class LimitedReader:
    """Wraps a binary stream and fails once more than ``max_bytes`` were read."""

    def __init__(self, stream: BinaryIO, max_bytes: Optional[int]):
        self.stream = stream
        self.max_bytes = max_bytes
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        data = self.stream.read(size)
        self.bytes_read += len(data)
        if self.max_bytes is not None and self.bytes_read > self.max_bytes:
            raise UploadTooLarge()
        return data


def _too_large(max_bytes: int) -> ValidationError:
    return ValidationError.for_field("file", f"The file may not be greater than {max_bytes} bytes")


class StorageBackend(ABC):
    """Object store used for content uploads."""

    @abstractmethod
    async def save(self, key: str, stream: BinaryIO, max_bytes: Optional[int] = None) -> int:
        """Store ``stream`` under ``key`` and return the number of bytes written."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete ``key``. A missing object is not an error."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def get_signed_url(self, key: str, ttl_seconds: int) -> str:
        """Time-limited URL to fetch ``key``."""


class LocalStorage(StorageBackend):
    """Files on local disk, downloads served by the API behind signed tokens."""

    def __init__(self, root: Path, public_base_url: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, key: str) -> Path:
        root = self.root.resolve()
        path = (root / key).resolve()
        if root not in path.parents:
            raise StorageError("Invalid storage key")
        return path

    async def save(self, key: str, stream: BinaryIO, max_bytes: Optional[int] = None) -> int:
        path = self.path_for(key)
        reader = LimitedReader(stream, max_bytes)
        loop = asyncio.get_running_loop()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as out:
                while True:
                    # the spooled upload may be on disk
                    chunk = await loop.run_in_executor(None, reader.read, CHUNK_SIZE)
                    if not chunk:
                        break
                    await out.write(chunk)
        except UploadTooLarge:
            await self._discard(path)
            storage_operations.labels(backend="local", operation="save", status="rejected").inc()
            raise _too_large(max_bytes)
        except OSError as e:
            await self._discard(path)
            storage_operations.labels(backend="local", operation="save", status="error").inc()
            logger.error(f"Failed to write object {fingerprint(key)}: {e}")
            raise StorageError("Failed to store file") from e

        storage_operations.labels(backend="local", operation="save", status="ok").inc()
        return reader.bytes_read

    async def _discard(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            logger.warning(f"Object {fingerprint(key)} already missing on delete")
        except OSError as e:
            storage_operations.labels(backend="local", operation="delete", status="error").inc()
            raise StorageError("Failed to delete file") from e
        storage_operations.labels(backend="local", operation="delete", status="ok").inc()

    async def exists(self, key: str) -> bool:
        return await aiofiles.os.path.isfile(self.path_for(key))

    def get_signed_url(self, key: str, ttl_seconds: int) -> str:
        token = create_jwt_token(key, DOWNLOAD_TOKEN_TYPE, timedelta(seconds=ttl_seconds))
        return f"{self.public_base_url}/api/v1/content-uploads/files/{token}"

    def resolve_signed_token(self, token: str) -> Optional[Path]:
        """Path for a download token, or None if the token is invalid or expired."""
        payload = verify_jwt_token(token, DOWNLOAD_TOKEN_TYPE)
        if not payload:
            return None
        return self.path_for(payload["sub"])


class S3Storage(StorageBackend):
    """S3-compatible bucket (AWS S3, Cloudflare R2, MinIO) with presigned URLs."""

    def __init__(self, bucket: str, endpoint_url: Optional[str] = None, region: Optional[str] = None,
                 access_key_id: Optional[str] = None, secret_access_key: Optional[str] = None):
        self.bucket = bucket
        self.s3_client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(signature_version="s3v4"),
        )

    async def _run(self, func, *args, **kwargs):
        # boto3 is blocking
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def save(self, key: str, stream: BinaryIO, max_bytes: Optional[int] = None) -> int:
        reader = LimitedReader(stream, max_bytes)
        try:
            await self._run(self.s3_client.upload_fileobj, reader, self.bucket, key)
        except UploadTooLarge:
            storage_operations.labels(backend="s3", operation="save", status="rejected").inc()
            # a multipart upload is aborted by boto3 when the reader raises
            raise _too_large(max_bytes)
        except (ClientError, BotoCoreError) as e:
            storage_operations.labels(backend="s3", operation="save", status="error").inc()
            logger.error(f"Failed to upload object {fingerprint(key)}: {e}")
            raise StorageError("Failed to store file") from e

        storage_operations.labels(backend="s3", operation="save", status="ok").inc()
        return reader.bytes_read

    async def delete(self, key: str) -> None:
        try:
            await self._run(self.s3_client.delete_object, Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            storage_operations.labels(backend="s3", operation="delete", status="error").inc()
            raise StorageError("Failed to delete file") from e
        storage_operations.labels(backend="s3", operation="delete", status="ok").inc()

    async def exists(self, key: str) -> bool:
        try:
            await self._run(self.s3_client.head_object, Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError("Failed to look up file") from e

    def get_signed_url(self, key: str, ttl_seconds: int) -> str:
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds,
                HttpMethod="GET",
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError("Failed to sign download URL") from e


def build_storage() -> StorageBackend:
    if settings.STORAGE_BACKEND == "s3":
        return S3Storage(
            bucket=settings.S3_BUCKET,
            endpoint_url=settings.S3_ENDPOINT_URL,
            region=settings.S3_REGION,
            access_key_id=settings.S3_ACCESS_KEY_ID,
            secret_access_key=settings.S3_SECRET_ACCESS_KEY,
        )
    return LocalStorage(Path(settings.STORAGE_LOCAL_ROOT), settings.PUBLIC_BASE_URL)


@lru_cache
def get_storage() -> StorageBackend:
    return build_storage()
