"""
Request binding for per-user file operations.

UserFilesMiddleware runs inside the authentication middleware. For every
request that carries an authenticated user it builds a UserFileService for that
user and attaches its operations to the CurrentUser, so routes can call
``user.upload_file(...)`` and friends directly. The storage client is the only
object shared between requests; the bindings are rebuilt each time.
"""

import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from user_files.config import Settings
from user_files.core.auth import AUTH_MARKER
from user_files.core.metadata import MetadataStore
from user_files.core.storage import StorageClient
from user_files.models.user import CurrentUser
from user_files.services.file_service import UserFileService


logger = logging.getLogger(__name__)


class UserFilesMiddleware(BaseHTTPMiddleware):
    """
    Attach file operations to the authenticated user of each request.

    - Without the authentication marker on ``app.state`` the request passes
      through untouched and a warning is logged.
    - Without a user on ``request.state`` the request passes through silently.
    - Otherwise ``request.state.storage_client`` is set and the user gains
      ``upload_file``, ``download_file``, ``delete_file``, ``sync_files`` and
      ``list_files``.
    """

    def __init__(
        self,
        app: ASGIApp,
        storage_client: StorageClient,
        metadata_store: MetadataStore,
        settings: Settings,
    ) -> None:
        super().__init__(app)
        self.storage_client = storage_client
        self.metadata_store = metadata_store
        self.default_acl = settings.default_acl

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not getattr(request.app.state, AUTH_MARKER, False):
            logger.warning(
                "User authentication is not installed; file operations are not available",
                extra={"path": request.url.path},
            )
            return await call_next(request)

        user: CurrentUser | None = getattr(request.state, "user", None)
        if user is None:
            return await call_next(request)

        self.bind(request, user)
        return await call_next(request)

    def bind(self, request: Request, user: CurrentUser) -> UserFileService:
        """Publish the storage client on the request and bind the user's operations."""
        request.state.storage_client = self.storage_client

        service = UserFileService(
            storage=self.storage_client,
            metadata_store=self.metadata_store,
            user_href=user.href,
            default_acl=self.default_acl,
        )
        user.upload_file = service.upload_file
        user.download_file = service.download_file
        user.delete_file = service.delete_file
        user.sync_files = service.sync_files
        user.list_files = service.list_files
        return service


__all__ = ["UserFilesMiddleware"]
