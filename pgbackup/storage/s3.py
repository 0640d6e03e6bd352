# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Blob Store - Backup storage on S3 or any S3-compatible service.

Google Cloud Storage is supported through its interoperability endpoint
(endpoint_url="https://storage.googleapis.com" with HMAC credentials).

Large files are uploaded with multipart upload and downloads are
streamed to disk, so a dump never has to fit in memory.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Set

import aiofiles
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from pgbackup.config import BackupConfig
from pgbackup.exceptions import ObjectNotFoundError, TransientStorageError

logger = structlog.get_logger()

DOWNLOAD_CHUNK_SIZE = 1024 * 1024

# S3 requires parts of at least 5 MiB (except the last)
MULTIPART_CHUNK_SIZE = 16 * 1024 * 1024
MULTIPART_THRESHOLD = 64 * 1024 * 1024

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _is_not_found(error: Exception) -> bool:
    return isinstance(error, ClientError) and _error_code(error) in _NOT_FOUND_CODES


class S3BlobStore:
    """
    BlobStore backed by an aiobotocore S3 client.

    The client is owned by the caller; use open_blob_store() to create
    one from a BackupConfig.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        list_batch_size: int = 1000,
        multipart_threshold: int = MULTIPART_THRESHOLD,
        multipart_chunk_size: int = MULTIPART_CHUNK_SIZE,
    ):
        self.client = client
        self.bucket = bucket
        self.list_batch_size = list_batch_size
        self.multipart_threshold = multipart_threshold
        self.multipart_chunk_size = multipart_chunk_size

    async def list_keys(self, prefix: str) -> Set[str]:
        """List all keys under prefix."""
        keys: Set[str] = set()
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            async for page in paginator.paginate(
                Bucket=self.bucket,
                Prefix=prefix,
                MaxKeys=self.list_batch_size,
            ):
                for obj in page.get("Contents", []):
                    keys.add(obj["Key"])
        except (ClientError, BotoCoreError) as e:
            raise TransientStorageError(
                f"Failed to list objects: {e}",
                details={"bucket": self.bucket, "prefix": prefix},
            ) from e

        logger.debug("objects_listed", bucket=self.bucket, prefix=prefix, total=len(keys))
        return keys

    async def upload_file(self, key: str, path: Path) -> None:
        """
        Upload a local file.

        Files above multipart_threshold go up in parts; a failed
        multipart upload is aborted so no orphaned parts are billed.
        """
        try:
            size = path.stat().st_size
            if size > self.multipart_threshold:
                await self._upload_multipart(key, path)
            else:
                async with aiofiles.open(path, "rb") as f:
                    body = await f.read()
                await self.client.put_object(Bucket=self.bucket, Key=key, Body=body)
        except (ClientError, BotoCoreError, OSError) as e:
            raise TransientStorageError(
                f"Failed to upload {path}: {e}",
                details={"bucket": self.bucket, "key": key},
            ) from e

        logger.debug("object_uploaded", bucket=self.bucket, key=key, size=size)

    async def _upload_multipart(self, key: str, path: Path) -> None:
        response = await self.client.create_multipart_upload(Bucket=self.bucket, Key=key)
        upload_id = response["UploadId"]
        parts: List[Dict[str, Any]] = []

        try:
            async with aiofiles.open(path, "rb") as f:
                part_number = 1
                while True:
                    chunk = await f.read(self.multipart_chunk_size)
                    if not chunk:
                        break
                    part = await self.client.upload_part(
                        Bucket=self.bucket,
                        Key=key,
                        UploadId=upload_id,
                        PartNumber=part_number,
                        Body=chunk,
                    )
                    parts.append({"ETag": part["ETag"], "PartNumber": part_number})
                    part_number += 1

            await self.client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except BaseException:
            try:
                await self.client.abort_multipart_upload(
                    Bucket=self.bucket, Key=key, UploadId=upload_id
                )
            except (ClientError, BotoCoreError) as abort_error:
                logger.warning(
                    "multipart_abort_failed",
                    key=key,
                    upload_id=upload_id,
                    error=str(abort_error),
                )
            raise

    async def download_file(self, key: str, path: Path) -> None:
        """
        Download an object to path.

        The data is written to a ".part" file and renamed when complete.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(path.name + ".part")
        size = 0

        try:
            response = await self.client.get_object(Bucket=self.bucket, Key=key)
            async with response["Body"] as stream:
                async with aiofiles.open(temp_path, "wb") as f:
                    while True:
                        chunk = await stream.read(DOWNLOAD_CHUNK_SIZE)
                        if not chunk:
                            break
                        await f.write(chunk)
                        size += len(chunk)
            temp_path.rename(path)
        except (ClientError, BotoCoreError, OSError) as e:
            temp_path.unlink(missing_ok=True)
            if _is_not_found(e):
                raise ObjectNotFoundError(
                    f"Object not found: {key}",
                    details={"bucket": self.bucket, "key": key},
                ) from e
            raise TransientStorageError(
                f"Failed to download {key}: {e}",
                details={"bucket": self.bucket, "key": key},
            ) from e

        logger.debug("object_downloaded", bucket=self.bucket, key=key, size=size)

    async def delete(self, key: str) -> None:
        """
        Delete an object.

        S3 deletes are idempotent, so existence is checked first to
        report missing objects.
        """
        try:
            await self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(
                    f"Object not found: {key}",
                    details={"bucket": self.bucket, "key": key},
                ) from e
            raise TransientStorageError(
                f"Failed to check {key}: {e}",
                details={"bucket": self.bucket, "key": key},
            ) from e
        except BotoCoreError as e:
            raise TransientStorageError(
                f"Failed to check {key}: {e}",
                details={"bucket": self.bucket, "key": key},
            ) from e

        try:
            await self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise TransientStorageError(
                f"Failed to delete {key}: {e}",
                details={"bucket": self.bucket, "key": key},
            ) from e

        logger.debug("object_deleted", bucket=self.bucket, key=key)


@asynccontextmanager
async def open_blob_store(config: BackupConfig) -> AsyncIterator[S3BlobStore]:
    """
    Create an S3 client from config and wrap it in an S3BlobStore.

    Credentials come from the usual botocore chain (environment, shared
    config files, instance metadata).
    """
    from aiobotocore.session import get_session

    session = get_session()
    async with session.create_client(
        "s3",
        region_name=config.region,
        endpoint_url=config.endpoint_url,
    ) as client:
        yield S3BlobStore(client, config.bucket)
