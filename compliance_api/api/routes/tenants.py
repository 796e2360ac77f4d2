"""
api/routes/tenants.py
---------------------
Tenant and dispensary management endpoints.

POST  /create-tenant  - Platform endpoint to onboard a new operator (not host-scoped).
GET   /tenant         - The tenant the request host resolves to.
PATCH /tenant         - Admin: rename the tenant.
PUT   /tenant/compliance - Admin: checkout eligibility rules.
POST  /dispensaries   - Admin: register a licensed location.
GET   /dispensaries   - Staff: list the tenant's locations.
"""

from fastapi import APIRouter, HTTPException, status

from compliance_api.dependencies import AdminUser, DbSession, StaffUser, TenantCtx
from compliance_api.schemas.tenant import (
    DispensaryCreate,
    DispensaryRead,
    TenantComplianceUpdate,
    TenantCreate,
    TenantRead,
    TenantRename,
)
from compliance_api.services.tenant_service import DispensaryService, TenantService

router = APIRouter(tags=["Tenants"])


@router.post(
    "/create-tenant",
    response_model=TenantRead,
    status_code=status.HTTP_201_CREATED,
    summary="Onboard a new tenant (dispensary operator)",
)
async def create_tenant(body: TenantCreate, db: DbSession) -> TenantRead:
    """
    Public endpoint: no authentication required.
    In production you may want to restrict this to an internal
    admin portal or require an invite token.
    """
    try:
        tenant = await TenantService.create_tenant(db, body)
        return TenantRead.model_validate(tenant)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("/tenant", response_model=TenantRead, summary="Current tenant")
async def get_tenant(ctx: TenantCtx, db: DbSession) -> TenantRead:
    tenant = await TenantService.get_tenant_by_id(db, ctx.tenant_id)
    return TenantRead.model_validate(tenant)


@router.patch("/tenant", response_model=TenantRead, summary="Admin: rename the tenant")
async def rename_tenant(
    body: TenantRename, ctx: TenantCtx, db: DbSession, admin: AdminUser
) -> TenantRead:
    try:
        tenant = await TenantService.rename_tenant(db, ctx, body.name)
        return TenantRead.model_validate(tenant)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.put(
    "/tenant/compliance",
    response_model=TenantRead,
    summary="Admin: update checkout eligibility rules",
)
async def update_compliance_config(
    body: TenantComplianceUpdate, ctx: TenantCtx, db: DbSession, admin: AdminUser
) -> TenantRead:
    tenant = await TenantService.update_compliance_config(db, ctx, body)
    return TenantRead.model_validate(tenant)


@router.post(
    "/dispensaries",
    response_model=DispensaryRead,
    status_code=status.HTTP_201_CREATED,
    summary="Admin: register a dispensary",
)
async def create_dispensary(
    body: DispensaryCreate, ctx: TenantCtx, db: DbSession, admin: AdminUser
) -> DispensaryRead:
    dispensary = await DispensaryService.create_dispensary(db, ctx, body)
    return DispensaryRead.model_validate(dispensary)


@router.get(
    "/dispensaries",
    response_model=list[DispensaryRead],
    summary="List the tenant's dispensaries",
)
async def list_dispensaries(
    ctx: TenantCtx, db: DbSession, staff: StaffUser
) -> list[DispensaryRead]:
    dispensaries = await DispensaryService.list_dispensaries(db, ctx)
    return [DispensaryRead.model_validate(d) for d in dispensaries]
