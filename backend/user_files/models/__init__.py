"""
Models package for the user files service.

Exports the file entry schemas and the request-scoped CurrentUser.
"""

from user_files.models.file_entry import (
    CannedACL,
    DeleteResponse,
    FileEntry,
    FileEntryResponse,
    FileListResponse,
    SyncResponse,
)
from user_files.models.user import CurrentUser


__all__ = [
    "CannedACL",
    "CurrentUser",
    "DeleteResponse",
    "FileEntry",
    "FileEntryResponse",
    "FileListResponse",
    "SyncResponse",
]
