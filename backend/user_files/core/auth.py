"""
Authentication Module

Local HS256 JWT authentication for the user files service. It identifies the
user of each request and leaves a CurrentUser on ``request.state.user`` for the
file middleware and routes further down the stack.

Key features:
- Local HS256 JWT generation and validation with configurable expiration
- UserAuthMiddleware resolving the bearer token of every request
- install_user_auth() marking the application as authentication-aware
- get_current_user dependency for route protection

Usage:
    ```python
    from fastapi import Depends
    from user_files.core.auth import get_current_user, install_user_auth

    install_user_auth(app, settings)

    @router.get("/me")
    async def me(user: CurrentUser = Depends(get_current_user)):
        return {"href": user.href}
    ```
"""

import logging

from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from jose import ExpiredSignatureError, JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from user_files.config import Settings, get_settings
from user_files.models.user import CurrentUser


logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

# Set on app.state once the auth middleware is installed
AUTH_MARKER = "user_auth_enabled"


# =============================================================================
# Local JWT Functions
# =============================================================================


def create_local_jwt(user_id: str, email: str, settings: Settings) -> str:
    """
    Create a local JWT token using HS256 algorithm.

    Token claims:
    - sub: User ID (subject), the last segment of the account href
    - email: User's email address
    - exp: Expiration timestamp
    - iat: Issued at timestamp
    - type: "local" to indicate local authentication

    Args:
        user_id: The user's unique identifier.
        email: The user's email address.
        settings: Settings instance containing secret_key and jwt_expiration_hours.

    Returns:
        str: The encoded JWT token string.
    """
    now = datetime.now(UTC)
    expire = now + timedelta(hours=settings.jwt_expiration_hours)

    payload = {
        "sub": user_id,
        "email": email,
        "exp": expire,
        "iat": now,
        "type": "local",
    }

    token = jwt.encode(payload, settings.secret_key, algorithm=JWT_ALGORITHM)

    logger.info("Created local JWT for user: %s (expires: %s)", user_id, expire.isoformat())
    return token


def validate_local_jwt(token: str, settings: Settings) -> dict[str, Any]:
    """
    Validate a local JWT token using HS256 algorithm.

    Args:
        token: The JWT token string to validate.
        settings: Settings instance containing secret_key for verification.

    Returns:
        dict: The decoded token payload containing claims.

    Raises:
        JWTError: If the token is invalid, expired, or signature verification fails.
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        logger.warning("Local JWT has expired")
        raise
    except JWTError as e:
        logger.warning("Local JWT validation failed: %s", str(e))
        raise

    if not payload.get("sub"):
        raise JWTError("Token is missing the 'sub' claim")

    logger.debug("Local JWT validated for subject: %s", payload["sub"])
    return payload


def create_access_token(
    user_id: str,
    email: str,
    settings: Settings | None = None,
) -> str:
    """
    Create an access token for the given user.

    Args:
        user_id: The user's unique identifier.
        email: The user's email address.
        settings: Optional Settings instance. If not provided, uses get_settings().

    Returns:
        str: The encoded JWT access token.
    """
    if settings is None:
        settings = get_settings()
    return create_local_jwt(user_id, email, settings)


def _bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("Authorization")
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()


# =============================================================================
# Middleware
# =============================================================================


class UserAuthMiddleware(BaseHTTPMiddleware):
    """
    Resolve the bearer token of each request into ``request.state.user``.

    A valid token yields a CurrentUser whose href is
    ``<accounts_base_url>/<sub>``. A missing or invalid token yields None; the
    request continues either way and routes decide whether to reject it.
    """

    def __init__(self, app: ASGIApp, settings: Settings) -> None:
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.user = self.resolve_user(request)
        return await call_next(request)

    def resolve_user(self, request: Request) -> CurrentUser | None:
        token = _bearer_token(request)
        if token is None:
            logger.debug("No bearer token on request", extra={"path": request.url.path})
            return None

        try:
            payload = validate_local_jwt(token, self.settings)
        except JWTError:
            logger.debug("Rejected bearer token", extra={"path": request.url.path})
            return None

        base_url = self.settings.accounts_base_url.rstrip("/")
        return CurrentUser(href=f"{base_url}/{payload['sub']}", email=payload.get("email"))


def install_user_auth(app: FastAPI, settings: Settings) -> None:
    """
    Add UserAuthMiddleware to ``app`` and set the auth marker on ``app.state``.

    Starlette runs the most recently added middleware first, so call this after
    adding any middleware that depends on ``request.state.user``.
    """
    app.add_middleware(UserAuthMiddleware, settings=settings)
    setattr(app.state, AUTH_MARKER, True)
    logger.info("User authentication middleware installed")


# =============================================================================
# Dependencies
# =============================================================================


async def get_current_user(request: Request) -> CurrentUser:
    """
    Return the request's user with its file operations bound.

    Raises:
        HTTPException: 401 if the request carries no authenticated user.
    """
    user: CurrentUser | None = getattr(request.state, "user", None)
    if user is None or not user.has_file_operations:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


__all__ = [
    "AUTH_MARKER",
    "UserAuthMiddleware",
    "create_access_token",
    "create_local_jwt",
    "get_current_user",
    "install_user_auth",
    "validate_local_jwt",
]
