"""
dependencies.py
---------------
FastAPI dependency injection functions for tenancy, authentication and
authorisation.

Flow for every host-scoped route:
  1. get_tenant_context resolves the tenant from the Host header (one read)
     and returns an immutable TenantContext for this request only. Routes
     declare it as a parameter, so it is resolved before the handler body
     runs and before any tenant-scoped query.
  2. OAuth2PasswordBearer extracts the Bearer token from the Authorization header.
  3. get_current_user validates the JWT, rejects tokens minted for another
     tenant, and loads the User within the context tenant.
  4. require_roles layers a role check on top of get_current_user.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_api.core.context import TenantContext
from compliance_api.core.exceptions import TenantMismatch
from compliance_api.core.logging import bind_tenant, get_logger
from compliance_api.core.security import decode_access_token
from compliance_api.db.session import get_db
from compliance_api.models.user import User, UserRole
from compliance_api.services.tenant_service import TenantService
from compliance_api.services.user_service import UserService

logger = get_logger(__name__)

DbSession = Annotated[AsyncSession, Depends(get_db)]

# tokenUrl must match the login endpoint path
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/login")

_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_tenant_context(
    request: Request,
    db: DbSession,
) -> TenantContext:
    """Resolve the request's tenant from its Host header."""
    ctx = await TenantService.resolve(db, request.headers.get("host"))
    bind_tenant(ctx.tenant_id, ctx.subdomain)
    return ctx


TenantCtx = Annotated[TenantContext, Depends(get_tenant_context)]


async def get_current_user(
    ctx: TenantCtx,
    token: Annotated[str, Depends(oauth2_scheme)],
    db: DbSession,
) -> User:
    """
    Decode the JWT, then load and return the full User from the database.
    Raises 401 if the token is invalid or the user no longer exists, and
    403 if the token belongs to a different tenant than the request host.
    """
    try:
        payload = decode_access_token(token)
    except JWTError as exc:
        logger.warning("JWT decode failed", error=str(exc))
        raise _CREDENTIALS_EXCEPTION
    user_id = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    if not user_id or not tenant_id:
        raise _CREDENTIALS_EXCEPTION
    if tenant_id != ctx.tenant_id:
        logger.warning("Token presented on foreign tenant host", token_tenant_id=tenant_id)
        raise TenantMismatch()

    # Always re-verify against DB so revoked / deleted users are rejected
    user = await UserService.get_user(db, ctx, user_id)
    if user is None:
        logger.warning("User from valid JWT not found in DB", user_id=user_id)
        raise _CREDENTIALS_EXCEPTION
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_roles(*roles: UserRole):
    """Dependency factory: the current user must hold one of ``roles``."""
    allowed = {role.value for role in roles}

    async def checker(current_user: CurrentUser) -> User:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(sorted(allowed))}",
            )
        return current_user

    return checker


AdminUser = Annotated[User, Depends(require_roles(UserRole.admin))]
StaffUser = Annotated[User, Depends(require_roles(UserRole.admin, UserRole.staff))]
