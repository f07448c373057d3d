from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPAuthorizationCredentials
from typing import List

from ..core.config import settings
from ..core.database import get_redis
from ..core.security import (
    security, token_authority, AuthenticationError,
    AuthorizationError, UserRole, Principal
)

async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Principal:
    """Extract and verify the principal from the Authorization header."""
    principal = token_authority.extract_identity(credentials.credentials)
    if principal is None:
        raise AuthenticationError("Invalid or expired token")

    return principal

# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific roles."""
    async def role_checker(
        principal: Principal = Depends(get_current_principal)
    ) -> Principal:
        if principal.role not in allowed_roles:
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return principal

    return role_checker

# Specific role dependencies
async def get_admin(
    principal: Principal = Depends(require_role([UserRole.ADMIN]))
) -> Principal:
    """Require admin role."""
    return principal

async def get_doctor(
    principal: Principal = Depends(require_role([UserRole.DOCTOR]))
) -> Principal:
    """Require doctor role."""
    return principal

async def get_patient(
    principal: Principal = Depends(require_role([UserRole.PATIENT]))
) -> Principal:
    """Require patient role."""
    return principal

# Rate limiting dependency
async def rate_limit_check(
    request: Request,
    redis_client = Depends(get_redis)
) -> None:
    """Basic rate limiting for login and registration endpoints."""
    client_ip = request.client.host if request.client else "unknown"
    key = f"rate_limit:{request.url.path}:{client_ip}"

    current_requests = redis_client.get(key)
    if current_requests is None:
        redis_client.setex(key, settings.LOGIN_RATE_WINDOW_SECONDS, 1)
    else:
        if int(current_requests) >= settings.LOGIN_RATE_LIMIT:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later."
            )
        redis_client.incr(key)
