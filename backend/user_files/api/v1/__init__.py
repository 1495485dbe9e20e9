"""
API v1 Router Aggregator.

Combines the v1 endpoint routers into a single APIRouter that the application
mounts under /api/v1.

Router Structure:
    - /files: Per-user file endpoints (list, upload, download, delete, sync)
"""

import logging

from fastapi import APIRouter

from user_files.api.v1.files import router as files_router


logger = logging.getLogger(__name__)

api_router = APIRouter()

api_router.include_router(
    files_router,
    prefix="/files",
    tags=["files"],
)
logger.debug("Loaded files router")


__all__ = ["api_router"]
