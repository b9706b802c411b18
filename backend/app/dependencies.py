# backend/app/dependencies.py
"""
FastAPI dependency injection functions for authentication, authorization and
service access.

Identity arrives as a JWT Bearer token; the token's ``sub`` and ``role``
claims become a ``Caller``. Role checks here are plain role membership, the
domain services apply ownership rules themselves.

Key Dependencies:
    - get_current_caller: Validate JWT Bearer token, return Caller
    - require_roles: Dependency factory for role gating
    - require_admin / require_editor: Common role gates
    - get_document_service / get_ingestion_service / get_database: Components
      built at startup and held on ``app.state``

Usage:
    from fastapi import Depends
    from app.dependencies import Caller, get_current_caller, require_admin

    @router.get("/statistics")
    async def statistics(caller: Caller = Depends(require_admin)):
        ...
"""

import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.database.models import UserRole

logger = logging.getLogger("docvault.dependencies")

# HTTP Bearer scheme for JWT tokens
bearer_scheme = HTTPBearer(auto_error=False)

VALID_ROLES = {role.value for role in UserRole}


@dataclass(frozen=True)
class Caller:
    """Authenticated identity taken from an access token."""

    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# =========================================================================
# APPLICATION COMPONENTS
# =========================================================================


def get_database(request: Request):
    return request.app.state.database


def get_document_service(request: Request):
    return request.app.state.document_service


def get_ingestion_service(request: Request):
    return request.app.state.ingestion_service


def get_auth_service(request: Request):
    return request.app.state.auth_service


# =========================================================================
# JWT AUTHENTICATION
# =========================================================================


async def get_current_caller(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Caller:
    """
    Extract and validate the caller from a JWT Bearer token.

    Raises:
        HTTPException: 401 if the token is missing, invalid, expired, not an
            access token, or carries an unusable subject/role
    """
    if not credentials:
        raise _unauthorized("Missing authentication credentials")

    auth_service = get_auth_service(request)
    try:
        payload = auth_service.decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token")

    if not auth_service.verify_token_type(payload, "access"):
        raise _unauthorized("Invalid token type. Expected access token.")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise _unauthorized("Token payload missing user ID")

    role = payload.get("role")
    if role not in VALID_ROLES:
        raise _unauthorized("Token payload has an unknown role")

    return Caller(user_id=user_id, role=role)


# =========================================================================
# ROLE GATES
# =========================================================================


def require_roles(*roles: str):
    """
    Dependency factory: 403 unless the caller holds one of ``roles``.

    Example:
        @router.post("/jobs")
        async def create_job(caller: Caller = Depends(require_roles("admin", "editor"))):
            ...
    """
    allowed = set(roles)

    async def _check(caller: Caller = Depends(get_current_caller)) -> Caller:
        if caller.role not in allowed:
            logger.warning(
                f"Permission denied: user {caller.user_id} (role: {caller.role}) "
                f"needs one of {sorted(allowed)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(sorted(allowed))}",
            )
        return caller

    return _check


require_admin = require_roles(UserRole.ADMIN.value)
require_editor = require_roles(UserRole.ADMIN.value, UserRole.EDITOR.value)
