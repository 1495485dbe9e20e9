"""
S3 Storage Client for Per-User Files

This module wraps a single boto3 S3 client bound to the configured bucket. All
blocking boto3 calls run in worker threads through ``async_wrap`` so that the
event loop serving requests is never blocked by a transfer.

Key Features:
- Local file upload with a canned ACL
- Download to a local destination path
- Quiet batch delete
- Paginated listing exposed as an async iterator of pages
- Public href construction for stored objects

The client is created once at application setup by ``create_storage_client``
and shared by reference with every request. Errors raised by boto3, botocore or
the local filesystem are logged and re-raised unchanged so callers can inspect
the original exception.
"""

import asyncio
import logging

from collections.abc import AsyncIterator, Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime
from functools import wraps
from typing import Any, TypeVar

import boto3

from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from user_files.config import Settings


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors surfaced by a transfer, re-raised after logging
STORAGE_ERRORS: tuple[type[Exception], ...] = (ClientError, BotoCoreError, OSError)


def async_wrap(func: Callable[..., T]) -> Callable[..., "asyncio.Future[T]"]:
    """
    Decorator to run a synchronous boto3 operation in a worker thread.

    Args:
        func: The synchronous function to wrap

    Returns:
        An async function that executes the original via asyncio.to_thread
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(func, *args, **kwargs)

    return wrapper


@dataclass(frozen=True)
class StoredObject:
    """One entry of a bucket listing."""

    key: str
    last_modified: datetime


class StorageClient:
    """
    Async facade over a boto3 S3 client bound to one bucket.

    Attributes:
        s3_client: Underlying boto3 S3 client
        bucket_name: Bucket holding every user's namespace
        base_url: Prefix of the public href built by object_url()

    Example usage:
        ```python
        storage = create_storage_client(settings)

        await storage.upload_file("/tmp/report.pdf", "abc123/report.pdf", acl="private")
        async for page in storage.iter_object_pages("abc123/"):
            for obj in page:
                print(obj.key, obj.last_modified)
        ```
    """

    def __init__(self, s3_client: Any, bucket_name: str, base_url: str) -> None:
        self.s3_client = s3_client
        self.bucket_name = bucket_name
        self.base_url = base_url

    def object_url(self, key: str) -> str:
        """Return the public href recorded for ``key``."""
        return f"{self.base_url}{self.bucket_name}/{key}"

    async def upload_file(self, local_path: str, key: str, acl: str) -> None:
        """
        Upload a local file to ``key`` with the given canned ACL.

        Args:
            local_path: Path of the file on the local filesystem
            key: Destination object key
            acl: Canned ACL such as "private" or "public-read"

        Raises:
            ClientError: If S3 rejects the request
            BotoCoreError: On transport or credential failures
            OSError: If the local file cannot be read
        """
        logger.info(
            "Uploading file to S3",
            extra={"bucket": self.bucket_name, "key": key, "acl": acl},
        )

        @async_wrap
        def _upload_file() -> None:
            self.s3_client.upload_file(
                Filename=local_path,
                Bucket=self.bucket_name,
                Key=key,
                ExtraArgs={"ACL": acl},
            )

        try:
            await _upload_file()
        except STORAGE_ERRORS:
            logger.exception(
                "Failed to upload file to S3",
                extra={"bucket": self.bucket_name, "key": key, "local_path": local_path},
            )
            raise

        logger.info("Uploaded file to S3", extra={"bucket": self.bucket_name, "key": key})

    async def download_file(self, key: str, destination: str) -> None:
        """
        Download ``key`` into the local ``destination`` path.

        Raises:
            ClientError: If the object does not exist or access is denied
            BotoCoreError: On transport or credential failures
            OSError: If the destination cannot be written
        """
        logger.info(
            "Downloading file from S3",
            extra={"bucket": self.bucket_name, "key": key, "destination": destination},
        )

        @async_wrap
        def _download_file() -> None:
            self.s3_client.download_file(
                Bucket=self.bucket_name,
                Key=key,
                Filename=destination,
            )

        try:
            await _download_file()
        except STORAGE_ERRORS:
            logger.exception(
                "Failed to download file from S3",
                extra={"bucket": self.bucket_name, "key": key},
            )
            raise

    async def delete_objects(self, keys: Iterable[str], quiet: bool = True) -> dict[str, Any]:
        """
        Delete ``keys`` in a single batch request.

        In quiet mode S3 only reports keys that failed. Per-key failures are
        logged as warnings; only a failure of the request itself raises.

        Args:
            keys: Object keys to delete
            quiet: Request quiet mode (default True)

        Returns:
            dict: Raw delete_objects response

        Raises:
            ClientError: If the request is rejected
            BotoCoreError: On transport or credential failures
        """
        objects = [{"Key": key} for key in keys]

        @async_wrap
        def _delete() -> dict[str, Any]:
            return self.s3_client.delete_objects(
                Bucket=self.bucket_name,
                Delete={"Objects": objects, "Quiet": quiet},
            )

        try:
            response = await _delete()
        except STORAGE_ERRORS:
            logger.exception(
                "Failed to delete objects from S3",
                extra={"bucket": self.bucket_name, "keys": [obj["Key"] for obj in objects]},
            )
            raise

        for error in response.get("Errors", []):
            logger.warning(
                "S3 reported a per-key delete failure",
                extra={
                    "bucket": self.bucket_name,
                    "key": error.get("Key"),
                    "code": error.get("Code"),
                    "error_message": error.get("Message"),
                },
            )

        logger.info(
            "Deleted objects from S3",
            extra={"bucket": self.bucket_name, "count": len(objects)},
        )
        return response

    async def iter_object_pages(self, prefix: str) -> AsyncIterator[list[StoredObject]]:
        """
        Iterate the bucket listing under ``prefix`` one page at a time.

        Each page is fetched in a worker thread when the consumer asks for it,
        so a consumer can start work on the first page while later pages are
        still unfetched. An error while fetching any page is logged and raised
        out of the iterator.

        Args:
            prefix: Key prefix to list, usually a user's namespace

        Yields:
            list[StoredObject]: The objects of one listing page (possibly empty)
        """
        paginator = self.s3_client.get_paginator("list_objects_v2")
        pages: Iterator[dict[str, Any]] = iter(
            paginator.paginate(Bucket=self.bucket_name, Prefix=prefix)
        )

        page_number = 0
        while True:
            try:
                page = await asyncio.to_thread(next, pages, None)
            except STORAGE_ERRORS:
                logger.exception(
                    "Failed to list objects from S3",
                    extra={"bucket": self.bucket_name, "prefix": prefix, "page": page_number},
                )
                raise

            if page is None:
                return

            page_number += 1
            yield [
                StoredObject(key=item["Key"], last_modified=item["LastModified"])
                for item in page.get("Contents", [])
            ]


def create_storage_client(settings: Settings) -> StorageClient:
    """
    Build the S3 storage client from verified settings.

    The boto3 client always uses TLS, SigV4 signing and request/response
    checksums. Call ``verify_storage_settings`` first; this function assumes
    credentials and bucket are present.

    Args:
        settings: Settings holding credentials, region, bucket and base URL

    Returns:
        StorageClient: Client shared by reference across requests
    """
    client_config = Config(
        signature_version="s3v4",
        request_checksum_calculation="when_supported",
        response_checksum_validation="when_supported",
    )

    s3_client = boto3.client(
        "s3",
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        region_name=settings.aws_region,
        use_ssl=True,
        config=client_config,
    )

    logger.info(
        "S3 storage client initialized",
        extra={"bucket": settings.aws_bucket, "region": settings.aws_region},
    )

    return StorageClient(
        s3_client=s3_client,
        bucket_name=settings.aws_bucket,
        base_url=settings.s3_base_url,
    )


__all__ = [
    "StorageClient",
    "StoredObject",
    "async_wrap",
    "create_storage_client",
]
