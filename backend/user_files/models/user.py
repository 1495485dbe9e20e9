"""
Request-scoped user object.

The auth middleware places a CurrentUser on ``request.state.user``. The file
middleware then binds the file operations onto it, so a route can simply
``await user.upload_file(path)``.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any


FileOperation = Callable[..., Awaitable[Any]]


@dataclass
class CurrentUser:
    """
    Authenticated user of the current request.

    Attributes:
        href: Account href; its last path segment is the storage namespace
        email: Email claim of the access token, if any
        upload_file: Bound upload operation, set by UserFilesMiddleware
        download_file: Bound download operation, set by UserFilesMiddleware
        delete_file: Bound delete operation, set by UserFilesMiddleware
        sync_files: Bound sync operation, set by UserFilesMiddleware
        list_files: Bound listing operation, set by UserFilesMiddleware
    """

    href: str
    email: str | None = None
    upload_file: FileOperation | None = None
    download_file: FileOperation | None = None
    delete_file: FileOperation | None = None
    sync_files: FileOperation | None = None
    list_files: FileOperation | None = None

    @property
    def has_file_operations(self) -> bool:
        return self.upload_file is not None
