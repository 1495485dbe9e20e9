"""
Identity key derivation.

A user's storage namespace is the last path segment of their account href, so
``https://api.example.com/v1/accounts/3Kf9`` stores its files under ``3Kf9/``.
"""


def get_user_id(account_href: str) -> str:
    """
    Return the namespace prefix for an account href.

    The prefix is everything after the last ``/``. A string without a slash is
    returned whole, and an href ending in ``/`` yields an empty prefix.

    Args:
        account_href: URI-like account reference

    Returns:
        The last path segment of ``account_href``

    Example:
        >>> get_user_id("https://api.example.com/v1/accounts/abc123")
        'abc123'
        >>> get_user_id("abc123")
        'abc123'
    """
    return account_href.rsplit("/", 1)[-1]


def build_object_key(user_id: str, file_name: str) -> str:
    """Storage key of ``file_name`` inside the user's namespace."""
    return f"{user_id}/{file_name}"


def namespace_prefix(user_id: str) -> str:
    """Listing prefix covering every object owned by ``user_id``."""
    return f"{user_id}/"
