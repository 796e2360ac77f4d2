"""
api/routes/admin.py
-------------------
Admin-only endpoints for user management within the host's tenant.

POST /admin/users  - Admin creates a new user (any role).
GET  /admin/users  - Admin lists the tenant's users.
"""

from fastapi import APIRouter, HTTPException, status

from compliance_api.dependencies import AdminUser, DbSession, TenantCtx
from compliance_api.schemas.user import UserCreate, UserRead
from compliance_api.services.user_service import UserService

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post(
    "/users",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Admin: create a new user in the current tenant",
)
async def admin_create_user(
    body: UserCreate, ctx: TenantCtx, db: DbSession, admin: AdminUser
) -> UserRead:
    try:
        user = await UserService.create_user_by_admin(db, ctx, body)
        return UserRead.model_validate(user)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get(
    "/users",
    response_model=list[UserRead],
    summary="Admin: list users in the current tenant",
)
async def admin_list_users(ctx: TenantCtx, db: DbSession, admin: AdminUser) -> list[UserRead]:
    users = await UserService.list_users_in_tenant(db, ctx)
    return [UserRead.model_validate(u) for u in users]
