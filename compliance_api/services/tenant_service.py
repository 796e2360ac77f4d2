"""
services/tenant_service.py
--------------------------
Tenant onboarding, host-based tenant resolution and dispensary lookup.

Service layer is responsible for:
  - Constructing queries
  - Enforcing business rules (e.g. unique names and subdomains)
  - Returning domain objects (ORM models / TenantContext) to the route layer
  - Never returning HTTP responses (that's the route's job)

Resolution performs exactly one read: the tenant row matching the host's
leading label. Nothing else is touched until a TenantContext exists.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_api.core.context import TenantContext, extract_subdomain
from compliance_api.core.exceptions import (
    DispensaryNotFound,
    TenantNotFound,
    TenantNotIdentified,
)
from compliance_api.core.logging import get_logger
from compliance_api.models.dispensary import Dispensary
from compliance_api.models.tenant import Tenant
from compliance_api.schemas.tenant import (
    DispensaryCreate,
    TenantComplianceUpdate,
    TenantCreate,
)

logger = get_logger(__name__)


class TenantService:

    @staticmethod
    async def create_tenant(db: AsyncSession, data: TenantCreate) -> Tenant:
        """
        Create a new tenant.
        Raises ValueError if the name or subdomain is already taken.
        """
        tenant = Tenant(
            name=data.name,
            subdomain=data.subdomain,
            jurisdiction=data.jurisdiction,
            timezone=data.timezone,
            age_verification_required=data.age_verification_required,
            medical_only=data.medical_only,
            require_id_scan=data.require_id_scan,
        )
        db.add(tenant)
        try:
            await db.flush()  # Trigger DB constraints before commit
            await db.refresh(tenant)
            logger.info(
                "Tenant created",
                tenant_id=tenant.id,
                subdomain=tenant.subdomain,
                jurisdiction=tenant.jurisdiction,
            )
            return tenant
        except IntegrityError:
            await db.rollback()
            raise ValueError(
                f"Tenant name '{data.name}' or subdomain '{data.subdomain}' already exists"
            )

    @staticmethod
    async def get_tenant_by_id(db: AsyncSession, tenant_id: str) -> Tenant | None:
        result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_tenant_by_subdomain(db: AsyncSession, subdomain: str) -> Tenant | None:
        result = await db.execute(select(Tenant).where(Tenant.subdomain == subdomain))
        return result.scalar_one_or_none()

    @staticmethod
    async def resolve(db: AsyncSession, host: str | None) -> TenantContext:
        """
        Map a request host to its tenant.

        Raises:
            TenantNotIdentified: the host has fewer than two labels.
            TenantNotFound: no tenant owns the host's leading label.
        """
        subdomain = extract_subdomain(host)
        if subdomain is None:
            logger.warning("Tenant not identifiable from host", host=host)
            raise TenantNotIdentified()

        tenant = await TenantService.get_tenant_by_subdomain(db, subdomain)
        if tenant is None:
            logger.warning("Unknown tenant subdomain", subdomain=subdomain)
            raise TenantNotFound(subdomain)

        return TenantContext(
            tenant_id=tenant.id,
            subdomain=tenant.subdomain,
            jurisdiction=tenant.jurisdiction,
            timezone=tenant.timezone,
        )

    @staticmethod
    async def rename_tenant(db: AsyncSession, ctx: TenantContext, name: str) -> Tenant:
        """Administrative rename. Raises ValueError if the name is taken."""
        tenant = await TenantService.get_tenant_by_id(db, ctx.tenant_id)
        if tenant is None:
            raise TenantNotFound(ctx.subdomain)
        old_name = tenant.name
        tenant.name = name
        try:
            await db.flush()
            await db.refresh(tenant)
        except IntegrityError:
            await db.rollback()
            raise ValueError(f"Tenant name '{name}' already exists")
        logger.info("Tenant renamed", old_name=old_name, new_name=name)
        return tenant

    @staticmethod
    async def update_compliance_config(
        db: AsyncSession, ctx: TenantContext, data: TenantComplianceUpdate
    ) -> Tenant:
        tenant = await TenantService.get_tenant_by_id(db, ctx.tenant_id)
        if tenant is None:
            raise TenantNotFound(ctx.subdomain)
        changes = data.model_dump(exclude_none=True)
        for field, value in changes.items():
            setattr(tenant, field, value)
        await db.flush()
        await db.refresh(tenant)
        logger.info("Tenant compliance config updated", **changes)
        return tenant


class DispensaryService:
    """Dispensaries are always looked up through the request's tenant."""

    @staticmethod
    async def create_dispensary(
        db: AsyncSession, ctx: TenantContext, data: DispensaryCreate
    ) -> Dispensary:
        dispensary = Dispensary(
            tenant_id=ctx.tenant_id,
            name=data.name,
            license_number=data.license_number,
        )
        db.add(dispensary)
        await db.flush()
        await db.refresh(dispensary)
        logger.info(
            "Dispensary created",
            dispensary_id=dispensary.id,
            license_number=dispensary.license_number,
        )
        return dispensary

    @staticmethod
    async def list_dispensaries(db: AsyncSession, ctx: TenantContext) -> list[Dispensary]:
        result = await db.execute(
            select(Dispensary)
            .where(Dispensary.tenant_id == ctx.tenant_id)
            .order_by(Dispensary.name)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_dispensary(
        db: AsyncSession, ctx: TenantContext, dispensary_id: str
    ) -> Dispensary:
        """
        Return the dispensary if it belongs to the context tenant.
        A dispensary of another tenant is reported as not found.
        """
        result = await db.execute(
            select(Dispensary).where(
                Dispensary.id == dispensary_id,
                Dispensary.tenant_id == ctx.tenant_id,
            )
        )
        dispensary = result.scalar_one_or_none()
        if dispensary is None:
            raise DispensaryNotFound(dispensary_id)
        return dispensary
