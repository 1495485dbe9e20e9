"""
File entry Pydantic models for the user files service.

A FileEntry is the metadata kept for one stored file in a user's record. The
response models shape what the HTTP API returns for listings, uploads, deletes
and syncs.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# CONSTANTS
# =============================================================================

# S3 canned ACLs accepted for uploads
CannedACL = Literal[
    "private",
    "public-read",
    "public-read-write",
    "authenticated-read",
    "aws-exec-read",
    "bucket-owner-read",
    "bucket-owner-full-control",
]


# =============================================================================
# MODELS
# =============================================================================


class FileEntry(BaseModel):
    """
    Metadata for one stored file.

    Attributes:
        href: Public URL of the object, ``<base><bucket>/<user_id>/<file_name>``
        last_modified: Upload time for uploads, the object's LastModified for syncs
    """

    href: str = Field(..., description="Public URL of the stored object")

    last_modified: datetime = Field(..., description="Last modification timestamp (UTC)")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "href": "https://s3.amazonaws.com/my-bucket/abc123/report.pdf",
                "last_modified": "2024-01-15T10:30:00Z",
            }
        }
    )

    def to_document(self, name: str) -> dict[str, Any]:
        """Serialize as an element of the record's ``files`` list."""
        return {"name": name, "href": self.href, "last_modified": self.last_modified}

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> tuple[str, "FileEntry"]:
        """Inverse of to_document(); returns ``(name, entry)``."""
        return document["name"], cls(
            href=document["href"], last_modified=document["last_modified"]
        )


class FileEntryResponse(BaseModel):
    """Schema for one file in API responses."""

    name: str = Field(..., description="File name within the user's namespace")

    href: str = Field(..., description="Public URL of the stored object")

    last_modified: datetime = Field(..., description="Last modification timestamp (UTC)")

    @classmethod
    def from_entry(cls, name: str, entry: FileEntry) -> "FileEntryResponse":
        return cls(name=name, href=entry.href, last_modified=entry.last_modified)


class FileListResponse(BaseModel):
    """Schema for the file listing endpoint."""

    files: list[FileEntryResponse] = Field(default_factory=list)

    total: int = Field(default=0, ge=0, description="Number of files in the record")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "files": [
                    {
                        "name": "report.pdf",
                        "href": "https://s3.amazonaws.com/my-bucket/abc123/report.pdf",
                        "last_modified": "2024-01-15T10:30:00Z",
                    }
                ],
                "total": 1,
            }
        }
    )


class DeleteResponse(BaseModel):
    """Schema returned after a file is deleted."""

    file_name: str = Field(..., description="Name of the deleted file")

    deleted: bool = Field(default=True)


class SyncResponse(BaseModel):
    """Schema returned after the record is reconciled against the bucket."""

    total: int = Field(..., ge=0, description="Number of files in the record after sync")

    files: list[FileEntryResponse] = Field(default_factory=list)
