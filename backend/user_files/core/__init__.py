"""
Core infrastructure for the user files service.

- storage: boto3 S3 client facade and factory
- database: Motor connection management
- metadata: per-user file metadata records
- auth: local JWT authentication middleware
- middleware: per-request binding of file operations
"""
