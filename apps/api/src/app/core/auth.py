"""
Authentication and Authorization Module

Provides the caller identity for FastAPI endpoints. Tokens are issued and
verified upstream by the auth collaborator; this module decodes the JWT
claims into an explicit ``Caller`` that is threaded through every service
call. There is no ambient "current user" state.

SECURITY NOTE:
- Development mode test tokens are ONLY accepted when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production to disable them
"""

import enum
import logging
import os
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings
from app.core.security import decode_token

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)


class UserRole(str, enum.Enum):
    """Roles recognised by the applications core."""

    STUDENT = "student"
    INSTITUTION = "institution"
    COMPANY = "company"
    ADMIN = "admin"


@dataclass(frozen=True)
class Caller:
    """
    The authenticated party invoking an operation.

    For organisation roles the ``id`` is the organisation id: an institution
    caller acts for the institution with that id, a company caller for the
    company with that id.
    """

    id: UUID
    role: UserRole
    email: str | None = None
    name: str | None = None

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    def __str__(self) -> str:
        return f"Caller(id={self.id}, role={self.role.value})"


def _is_dev_mode_safe() -> bool:
    """
    Check if development test tokens may be accepted.

    Requires PYTHON_ENV=development in settings AND in the raw environment,
    and never when the environment says production or staging.
    """
    env_var = os.getenv("PYTHON_ENV", settings.python_env).lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()


def _unauthenticated(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _parse_dev_token(token: str) -> Caller | None:
    """Parse a development token of the form ``<role>:<uuid>``."""
    role_part, sep, id_part = token.partition(":")
    if not sep:
        return None
    try:
        return Caller(id=UUID(id_part), role=UserRole(role_part), name=f"Test {role_part}")
    except ValueError:
        return None


def caller_from_token(token: str) -> Caller:
    """
    Validate a bearer token and build the Caller from its claims.

    Raises:
        HTTPException 401: If the token is invalid, expired or lacks claims
    """
    if _DEVELOPMENT_MODE:
        dev_caller = _parse_dev_token(token)
        if dev_caller is not None:
            logger.debug(f"Development mode: using test token for {dev_caller}")
            return dev_caller

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthenticated("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthenticated("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        subject = payload.get("sub")
        if not subject:
            raise ValueError("Missing 'sub' claim in token")

        return Caller(
            id=UUID(subject),
            role=UserRole(payload.get("role", "")),
            email=payload.get("email"),
            name=payload.get("name"),
        )
    except ValueError as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthenticated(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_caller(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Caller:
    """FastAPI dependency returning the authenticated caller."""
    caller = caller_from_token(credentials.credentials)
    logger.debug(f"Authenticated {caller}")
    return caller


def require_role(*roles: UserRole) -> Callable[..., Coroutine[Any, Any, Caller]]:
    """
    Build a dependency that only admits callers holding one of ``roles``.

    Usage:
        @router.post("/applications")
        async def submit(caller: Caller = Depends(require_role(UserRole.STUDENT))):
            ...
    """
    allowed = set(roles)

    async def dependency(caller: Caller = Depends(get_current_caller)) -> Caller:
        if caller.role not in allowed:
            logger.warning(
                f"Access denied: {caller} requires one of {[r.value for r in allowed]}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "FORBIDDEN",
                    "message": "Your account type cannot perform this action.",
                },
            )
        return caller

    return dependency


__all__ = [
    "Caller",
    "UserRole",
    "caller_from_token",
    "get_current_caller",
    "require_role",
]
