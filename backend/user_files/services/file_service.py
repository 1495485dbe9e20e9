"""
Per-User File Operations Service

This module implements the file operations bound to an authenticated user:
upload, download, delete and sync. Objects live under the user's namespace
prefix (the last segment of their account href) in the shared bucket, and each
user's metadata record tracks one FileEntry per stored file.

Ordering within one call is fixed: the transfer completes before the metadata
record is read, modified and saved. Across calls nothing is ordered. Records
are saved whole, so overlapping operations for the same user follow last write
wins and one of them may lose its change to the record.

Cancellation is not offered. A caller may bound its wait with
``asyncio.wait_for``, but a transfer or record save already in flight may
still complete after the timeout.
"""

import asyncio
import logging

from datetime import UTC, datetime
from pathlib import PurePath

from user_files.config import DEFAULT_ACL
from user_files.core.metadata import MetadataStore
from user_files.core.storage import StorageClient, StoredObject
from user_files.models.file_entry import FileEntry
from user_files.utils.identity import build_object_key, get_user_id, namespace_prefix
from user_files.utils.logger import add_log_context


logger = logging.getLogger(__name__)


class UserFileService:
    """
    File operations scoped to one user's namespace.

    Every operation completes by returning or fails by raising the error of
    the collaborator that failed (boto3/botocore, the filesystem or pymongo).
    Each call performs at most one transfer and at most one metadata
    read-modify-write, with no retries.

    Attributes:
        user_href: Account href of the owning user
        user_id: Namespace prefix derived from user_href
        default_acl: Canned ACL used when upload_file() gets none

    Example usage:
        ```python
        service = UserFileService(storage, metadata_store, user.href)

        await service.upload_file("/tmp/report.pdf", acl="public-read")
        await service.download_file("report.pdf", "/tmp/copy.pdf")
        await service.delete_file("report.pdf")
        await service.sync_files()
        ```
    """

    def __init__(
        self,
        storage: StorageClient,
        metadata_store: MetadataStore,
        user_href: str,
        default_acl: str = DEFAULT_ACL,
    ) -> None:
        self._storage = storage
        self._metadata_store = metadata_store
        self.user_href = user_href
        self.user_id = get_user_id(user_href)
        self.default_acl = default_acl
        self._logger = add_log_context(logger, user_id=self.user_id)

    def _key(self, file_name: str) -> str:
        return build_object_key(self.user_id, file_name)

    async def upload_file(self, local_path: str, acl: str | None = None) -> FileEntry:
        """
        Upload a local file and record it in the user's metadata.

        The object key is ``<user_id>/<base name of local_path>``. Uploading the
        same base name again overwrites the object and replaces its entry.

        Args:
            local_path: Path of the file to upload
            acl: Canned ACL for the object; defaults to ``default_acl``

        Returns:
            FileEntry: The entry written to the record

        Raises:
            ClientError, BotoCoreError, OSError: The transfer failed; the
                record was not touched
            PyMongoError: Reading or saving the record failed after the
                object was stored
        """
        file_name = PurePath(local_path).name
        key = self._key(file_name)

        await self._storage.upload_file(local_path, key, acl or self.default_acl)

        entry = FileEntry(href=self._storage.object_url(key), last_modified=datetime.now(UTC))
        record = await self._metadata_store.get_record(self.user_href)
        record.ensure_files()[file_name] = entry
        await record.save()

        self._logger.info(
            "File uploaded", extra={"operation": "upload_file", "file_name": file_name}
        )
        return entry

    async def download_file(self, file_name: str, destination: str) -> None:
        """
        Download ``file_name`` from the user's namespace to ``destination``.

        The metadata record is never read or written.
        """
        await self._storage.download_file(self._key(file_name), destination)
        self._logger.info(
            "File downloaded", extra={"operation": "download_file", "file_name": file_name}
        )

    async def delete_file(self, file_name: str) -> None:
        """
        Delete ``file_name`` from storage and drop its metadata entry.

        The object is removed with a quiet batch delete. A record without any
        files is left unsaved; otherwise the entry is dropped (if present) and
        the record saved, leaving an empty mapping after the last file.

        Raises:
            ClientError, BotoCoreError: The delete request failed; the record
                was not touched
            PyMongoError: Reading or saving the record failed
        """
        await self._storage.delete_objects([self._key(file_name)], quiet=True)

        record = await self._metadata_store.get_record(self.user_href)
        if record.files is None:
            return

        record.files.pop(file_name, None)
        await record.save()

        self._logger.info(
            "File deleted", extra={"operation": "delete_file", "file_name": file_name}
        )

    async def sync_files(self) -> int:
        """
        Reconcile the user's metadata record with the objects in storage.

        Every object under the user's prefix gets an entry carrying its storage
        LastModified time. Directory placeholders (the bare prefix or any key
        ending in a slash) are skipped. Entries for files no longer in storage
        are left alone.

        Reconciliation tasks start while later listing pages are still being
        fetched. Their read-modify-write cycles share one lock so entries from
        the same sync never overwrite each other. A failing task is logged as a
        warning and the others carry on.

        Returns:
            int: Number of objects reconciled successfully

        Raises:
            ClientError, BotoCoreError: Listing failed; reconciliation tasks
                already started are awaited before the error is raised
        """
        prefix = namespace_prefix(self.user_id)
        record_lock = asyncio.Lock()
        tasks: list[asyncio.Task[bool]] = []

        try:
            async for page in self._storage.iter_object_pages(prefix):
                for stored_object in page:
                    file_name = stored_object.key.removeprefix(prefix)
                    if not file_name or file_name.endswith("/"):
                        continue
                    tasks.append(
                        asyncio.create_task(
                            self._reconcile(record_lock, file_name, stored_object)
                        )
                    )
        finally:
            results = await asyncio.gather(*tasks)

        reconciled = sum(results)
        self._logger.info(
            "Files synced",
            extra={"operation": "sync_files", "listed": len(tasks), "reconciled": reconciled},
        )
        return reconciled

    async def _reconcile(
        self, record_lock: asyncio.Lock, file_name: str, stored_object: StoredObject
    ) -> bool:
        entry = FileEntry(
            href=self._storage.object_url(stored_object.key),
            last_modified=stored_object.last_modified,
        )
        try:
            async with record_lock:
                record = await self._metadata_store.get_record(self.user_href)
                record.ensure_files()[file_name] = entry
                await record.save()
        except Exception:
            self._logger.warning(
                "Failed to reconcile file metadata",
                extra={"operation": "sync_files", "file_name": file_name},
                exc_info=True,
            )
            return False
        return True

    async def list_files(self) -> dict[str, FileEntry]:
        """Return the user's file entries, or an empty mapping if there are none."""
        record = await self._metadata_store.get_record(self.user_href)
        return dict(record.files or {})


__all__ = ["UserFileService"]
