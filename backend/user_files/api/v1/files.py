"""
User File API Endpoints.

This module exposes the file operations bound to the authenticated user by
UserFilesMiddleware. Every endpoint requires a user; requests without one get
401 before any storage or database work happens.

Endpoints:
- GET / - List the user's file entries
- POST / - Upload a file (multipart) with an optional canned ACL
- GET /{file_name} - Download a file
- DELETE /{file_name} - Delete a file and its entry
- POST /sync - Reconcile the user's entries with the objects in storage

Error mapping:
- S3 NoSuchKey / 404 -> 404
- Other S3 and botocore failures -> 502
- MongoDB failures or an unavailable database -> 503
"""

import logging
import shutil
import tempfile

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path, PurePath

import aiofiles

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from pymongo.errors import PyMongoError
from starlette.background import BackgroundTask

from user_files.core.auth import get_current_user
from user_files.core.database import DatabaseUnavailableError
from user_files.models.file_entry import (
    CannedACL,
    DeleteResponse,
    FileEntryResponse,
    FileListResponse,
    SyncResponse,
)
from user_files.models.user import CurrentUser


logger = logging.getLogger(__name__)

router = APIRouter()

NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})

UPLOAD_CHUNK_SIZE = 1024 * 1024

COMMON_RESPONSES: dict[int | str, dict[str, str]] = {
    401: {"description": "Not authenticated or invalid token"},
    502: {"description": "Storage service error"},
    503: {"description": "Metadata database unavailable"},
}


# =============================================================================
# Helper Functions
# =============================================================================


@contextmanager
def translate_errors(operation: str, file_name: str | None = None) -> Iterator[None]:
    """Convert storage and database errors raised inside the block into HTTPException."""
    try:
        yield
    except ClientError as e:
        error_code = str(e.response.get("Error", {}).get("Code", ""))
        if error_code in NOT_FOUND_CODES:
            logger.info(
                "File not found in storage",
                extra={"operation": operation, "file_name": file_name},
            )
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"File not found: {file_name}" if file_name else "File not found",
            ) from e
        logger.exception("Storage request failed", extra={"operation": operation})
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Storage service error",
        ) from e
    except BotoCoreError as e:
        logger.exception("Storage client error", extra={"operation": operation})
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Storage service error",
        ) from e
    except (PyMongoError, DatabaseUnavailableError) as e:
        logger.exception("Metadata database unavailable", extra={"operation": operation})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database service unavailable",
        ) from e


def _entry_responses(files: dict) -> list[FileEntryResponse]:
    return [FileEntryResponse.from_entry(name, entry) for name, entry in sorted(files.items())]


# =============================================================================
# API Endpoints
# =============================================================================


@router.get(
    "/",
    response_model=FileListResponse,
    summary="List user files",
    responses=COMMON_RESPONSES,
)
async def list_files(user: CurrentUser = Depends(get_current_user)) -> FileListResponse:
    """List the file entries recorded for the authenticated user, sorted by name."""
    with translate_errors("list_files"):
        files = await user.list_files()

    return FileListResponse(files=_entry_responses(files), total=len(files))


@router.post(
    "/",
    response_model=FileEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a file",
    description="Store a file in the user's namespace and record its metadata. "
    "Uploading an existing name replaces the object and its entry.",
    responses={**COMMON_RESPONSES, 400: {"description": "Missing file name"}},
)
async def upload_file(
    file: UploadFile = File(..., description="File to upload"),
    acl: CannedACL | None = Query(
        default=None,
        description="Canned ACL for the stored object (defaults to the configured ACL)",
    ),
    user: CurrentUser = Depends(get_current_user),
) -> FileEntryResponse:
    """
    Upload a file for the authenticated user.

    The request body is spooled to a temporary directory under the upload's
    base name, so the stored key matches the client's file name.

    Args:
        file: Multipart file upload
        acl: Optional canned ACL
        user: Authenticated user with bound file operations

    Returns:
        FileEntryResponse: The recorded entry
    """
    file_name = PurePath(file.filename or "").name
    if not file_name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file must have a file name",
        )

    with tempfile.TemporaryDirectory(prefix="user-files-") as tmp_dir:
        local_path = Path(tmp_dir) / file_name
        async with aiofiles.open(local_path, "wb") as out:
            while chunk := await file.read(UPLOAD_CHUNK_SIZE):
                await out.write(chunk)

        with translate_errors("upload_file", file_name):
            entry = await user.upload_file(str(local_path), acl=acl)

    return FileEntryResponse.from_entry(file_name, entry)


@router.post(
    "/sync",
    response_model=SyncResponse,
    summary="Sync file metadata with storage",
    responses=COMMON_RESPONSES,
)
async def sync_files(user: CurrentUser = Depends(get_current_user)) -> SyncResponse:
    """Record every object in the user's namespace, then return the resulting entries."""
    with translate_errors("sync_files"):
        await user.sync_files()
        files = await user.list_files()

    return SyncResponse(total=len(files), files=_entry_responses(files))


@router.get(
    "/{file_name}",
    response_class=FileResponse,
    summary="Download a file",
    responses={**COMMON_RESPONSES, 404: {"description": "File not found"}},
)
async def download_file(
    file_name: str,
    user: CurrentUser = Depends(get_current_user),
) -> FileResponse:
    """
    Download one of the authenticated user's files.

    The object is fetched into a temporary directory that is removed once the
    response has been sent.
    """
    tmp_dir = tempfile.mkdtemp(prefix="user-files-")
    destination = Path(tmp_dir) / PurePath(file_name).name

    try:
        with translate_errors("download_file", file_name):
            await user.download_file(file_name, str(destination))
    except BaseException:
        shutil.rmtree(tmp_dir, ignore_errors=True)
        raise

    return FileResponse(
        destination,
        filename=destination.name,
        background=BackgroundTask(shutil.rmtree, tmp_dir, ignore_errors=True),
    )


@router.delete(
    "/{file_name}",
    response_model=DeleteResponse,
    summary="Delete a file",
    responses=COMMON_RESPONSES,
)
async def delete_file(
    file_name: str,
    user: CurrentUser = Depends(get_current_user),
) -> DeleteResponse:
    """Delete one of the authenticated user's files and drop its entry."""
    with translate_errors("delete_file", file_name):
        await user.delete_file(file_name)

    return DeleteResponse(file_name=file_name)
