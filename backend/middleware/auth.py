"""
Authentication Middleware and Dependencies

Provides:
- get_current_user_required: Extract and validate user from JWT token
- RoleChecker: Dependency for role validation
"""

from typing import List, Optional
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from database.ledger_models import UserRole
from logging_config import set_request_context
from sentry_integration import set_user
from services.auth import decode_token, AuthUser, AuthService

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


async def _resolve_user(
    credentials: Optional[HTTPAuthorizationCredentials],
    db: AsyncSession
) -> AuthUser:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )

    token_data = decode_token(credentials.credentials)

    if not token_data:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    if token_data.token_type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"}
        )

    # Role comes from the users table so a role change applies immediately
    user = await AuthService(db).get_user_by_id(token_data.user_id)
    if not user or user.username != token_data.username:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User no longer exists",
            headers={"WWW-Authenticate": "Bearer"}
        )

    role = user.role.value if isinstance(user.role, UserRole) else str(user.role)
    auth_user = AuthUser(id=user.id, username=user.username, role=role, email=user.email)

    set_request_context(user_id=auth_user.id, username=auth_user.username)
    set_user(auth_user.id, username=auth_user.username, role=auth_user.role)

    return auth_user


async def get_current_user_required(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> AuthUser:
    """
    Extract current user from JWT token.
    Raises 401 if no token or invalid token.
    """
    return await _resolve_user(credentials, db)


class RoleChecker:
    """
    Dependency class for role-based access control.

    Usage:
        @router.get("/admin-only")
        async def admin_endpoint(user: AuthUser = Depends(RoleChecker(["ADMIN"]))):
            ...
    """

    def __init__(self, allowed_roles: List[str]):
        self.allowed_roles = allowed_roles

    async def __call__(
        self,
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: AsyncSession = Depends(get_db)
    ) -> AuthUser:
        user = await _resolve_user(credentials, db)

        if user.role not in self.allowed_roles:
            logger.warning(f"Access denied for {user.username} ({user.role}); requires {self.allowed_roles}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {self.allowed_roles}"
            )

        return user


# Convenience role checkers
require_admin = RoleChecker([UserRole.ADMIN.value])
require_bookkeeping = RoleChecker([UserRole.ACCOUNTANT.value, UserRole.ADMIN.value])
