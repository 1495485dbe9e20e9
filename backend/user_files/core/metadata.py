"""
Per-user file metadata records.

Each user owns one document in the ``custom_data`` collection, keyed by their
account href. The document's ``files`` field lists the user's stored files.
In memory that list becomes a mapping from file name to FileEntry. File names
contain dots, which are awkward as MongoDB field names, so the mapping is never
stored as a sub-document.

Saving replaces the whole document (last write wins). Two overlapping
read-modify-write cycles on the same record can therefore drop one another's
changes; callers that need isolation must serialize their own cycles.
"""

import logging

from collections.abc import Callable
from typing import Any

from motor.motor_asyncio import AsyncIOMotorCollection

from user_files.models.file_entry import FileEntry


logger = logging.getLogger(__name__)

CollectionProvider = Callable[[], AsyncIOMotorCollection]


class FileMetadataRecord:
    """
    In-memory copy of one user's metadata document.

    Attributes:
        href: Account href the record belongs to
        files: File entries keyed by name, or None if the record has none yet
        extra: Any other fields of the stored document, written back unchanged
    """

    def __init__(
        self,
        store: "MetadataStore",
        href: str,
        files: dict[str, FileEntry] | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self._store = store
        self.href = href
        self.files = files
        self.extra = extra or {}

    def ensure_files(self) -> dict[str, FileEntry]:
        """Create the files mapping if absent and return it."""
        if self.files is None:
            self.files = {}
        return self.files

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = dict(self.extra)
        if self.files is not None:
            document["files"] = [entry.to_document(name) for name, entry in self.files.items()]
        return document

    async def save(self) -> None:
        """Persist the whole record, replacing whatever is stored."""
        await self._store.save_record(self)

    def __repr__(self) -> str:
        count = None if self.files is None else len(self.files)
        return f"FileMetadataRecord(href={self.href!r}, files={count})"


class MetadataStore:
    """
    Reads and writes FileMetadataRecord documents through Motor.

    The collection is resolved on every call so the store can be built before
    the database connects at application startup.

    Example usage:
        ```python
        store = MetadataStore(db_client.get_custom_data_collection)

        record = await store.get_record(user.href)
        record.ensure_files()["report.pdf"] = entry
        await record.save()
        ```
    """

    def __init__(self, get_collection: CollectionProvider) -> None:
        self._get_collection = get_collection

    async def get_record(self, href: str) -> FileMetadataRecord:
        """
        Load the record for ``href``.

        A missing document yields an empty record whose ``files`` is None.

        Raises:
            PyMongoError: If the read fails
            DatabaseUnavailableError: If the database is not connected
        """
        document = await self._get_collection().find_one({"_id": href})
        if document is None:
            return FileMetadataRecord(self, href)

        document = dict(document)
        document.pop("_id", None)
        raw_files = document.pop("files", None)

        files: dict[str, FileEntry] | None = None
        if raw_files is not None:
            files = dict(FileEntry.from_document(item) for item in raw_files)

        return FileMetadataRecord(self, href, files=files, extra=document)

    async def save_record(self, record: FileMetadataRecord) -> None:
        """
        Replace the stored document for ``record.href``.

        Raises:
            PyMongoError: If the write fails
            DatabaseUnavailableError: If the database is not connected
        """
        await self._get_collection().replace_one(
            {"_id": record.href}, record.to_document(), upsert=True
        )
        logger.debug(
            "Saved file metadata record",
            extra={"href": record.href, "file_count": len(record.files or {})},
        )


__all__ = ["FileMetadataRecord", "MetadataStore"]
