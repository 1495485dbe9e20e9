"""
Services package for the user files service.

- file_service: per-user upload, download, delete and sync operations
"""

from user_files.services.file_service import UserFileService


__all__ = ["UserFileService"]
