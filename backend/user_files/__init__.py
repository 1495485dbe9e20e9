"""
User Files Backend Package

This package attaches per-user S3 file operations to the authenticated user of a
FastAPI request. It provides:

- Upload, download and delete of user files in a shared S3 bucket
- Bulk sync of S3 listings back into the user's metadata record
- A request middleware that binds these operations onto the current user
- REST endpoints exposing the bound operations

Package Structure:
- api/: REST API endpoints organized by version (v1)
- core/: Infrastructure (storage client, database, metadata store, auth, middleware)
- models/: Pydantic data models and the request user
- services/: Per-user file operation orchestration
- utils/: Identity helpers and logging configuration
"""

__version__ = "1.0.0"
__app_name__ = "user-files"
