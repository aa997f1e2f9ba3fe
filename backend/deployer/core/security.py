"""
Security utilities for API key authentication and the admin check.

Keys come from configuration: ``ADMIN_API_KEY`` grants the admin role,
``API_KEYS`` lists keys that may deploy but not force redeploys or stop.
"""
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from deployer.core.config import settings
from deployer.core.exceptions import InsufficientPermissionsError


# API Key header
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


class CallerRole(str, Enum):
    """Roles a caller can hold."""
    ADMIN = "admin"
    USER = "user"


@dataclass
class Caller:
    """Authenticated caller of the API."""

    name: str
    role: CallerRole

    @property
    def is_admin(self) -> bool:
        return self.role == CallerRole.ADMIN


def _matches(candidate: str, expected: str) -> bool:
    return bool(expected) and secrets.compare_digest(candidate.encode(), expected.encode())


def resolve_caller(api_key: Optional[str]) -> Optional[Caller]:
    """
    Map an API key to a caller.

    Args:
        api_key: Raw key from the request header

    Returns:
        Caller if the key is known, None otherwise
    """
    if not api_key:
        return None
    if _matches(api_key, settings.ADMIN_API_KEY):
        return Caller(name="admin", role=CallerRole.ADMIN)
    for index, key in enumerate(settings.get_api_keys()):
        if _matches(api_key, key):
            return Caller(name=f"user-{index}", role=CallerRole.USER)
    return None


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> Caller:
    """Dependency for verifying API keys."""
    caller = resolve_caller(api_key)
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return caller


def require_admin_for(action: str):
    """
    Dependency factory that rejects non-admin callers.

    Args:
        action: Human-readable action name used in the error message

    Returns:
        A dependency function that validates the role
    """
    async def admin_checker(caller: Caller = Depends(verify_api_key)) -> Caller:
        if not caller.is_admin:
            raise InsufficientPermissionsError(CallerRole.ADMIN.value, action)
        return caller

    return admin_checker
