"""
Utility modules for the user files service.

- identity: namespace prefix and storage key derivation from account hrefs
- logger: structured logging setup and context adapters
"""

from user_files.utils.identity import build_object_key, get_user_id, namespace_prefix
from user_files.utils.logger import add_log_context, setup_logging


__all__ = [
    "get_user_id",
    "build_object_key",
    "namespace_prefix",
    "add_log_context",
    "setup_logging",
]
