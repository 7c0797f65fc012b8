"""
API Dependencies
Provides authentication and authorization dependencies from worker identity tokens
"""
from typing import Optional, Callable
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.services.jwt_service import JwtService
from atams.exceptions import UnauthorizedException, ForbiddenException

# JWT Bearer token security
security = HTTPBearer(auto_error=False)
jwt_service = JwtService()


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[dict]:
    """
    Resolve the caller from the Bearer token

    Returns:
        User dict with: user_id, company_id, role, role_level
        None if no token was sent
    """
    if credentials is None or not credentials.credentials:
        return None
    return jwt_service.verify_token(credentials.credentials)


async def require_auth(current_user: Optional[dict] = Depends(get_current_user)) -> dict:
    """Require an authenticated caller"""
    if current_user is None:
        raise UnauthorizedException("Authentication required")
    return current_user


def require_min_role_level(min_level: int) -> Callable:
    """
    Require role_level >= min_level

    Usage:
        @router.get("/", dependencies=[Depends(require_min_role_level(50))])
    """
    async def _check_min_level(current_user: dict = Depends(require_auth)) -> dict:
        if current_user["role_level"] < min_level:
            raise ForbiddenException("Insufficient role level")
        return current_user

    return _check_min_level


__all__ = [
    "get_current_user",
    "require_auth",
    "require_min_role_level",
]
