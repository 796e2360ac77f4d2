"""
services/eligibility_service.py
-------------------------------
Checkout eligibility: age and ID verification, per the tenant's compliance
config.

When the tenant requires age verification, a customer with an account must
have a recorded date of birth, be at least the minimum age (MINIMUM_AGE, or
MEDICAL_MINIMUM_AGE for medical-only operators) on the tenant's local date,
and, when the tenant requires ID scans, hold an ID verification no older
than ID_VERIFICATION_MAX_AGE_DAYS.

Customer ids without an account in the tenant are walk-in customers whose
ID staff check at the counter; their verification is recorded with
verify_id() and they are not checked here.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from compliance_api.core.config import settings
from compliance_api.core.context import TenantContext, as_utc, utcnow
from compliance_api.core.exceptions import (
    DateOfBirthRequired,
    IdVerificationExpired,
    IdVerificationRequired,
    TenantNotFound,
    UnderMinimumAge,
)
from compliance_api.core.logging import get_logger
from compliance_api.models.compliance import ComplianceEventType, ComplianceLogEntry
from compliance_api.schemas.compliance import IdVerificationDetails
from compliance_api.services.audit_service import AuditService
from compliance_api.services.tenant_service import TenantService
from compliance_api.services.user_service import UserService

logger = get_logger(__name__)


def age_on(date_of_birth: date, day: date) -> int:
    """Whole years between ``date_of_birth`` and ``day``."""
    age = day.year - date_of_birth.year
    if (day.month, day.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


class EligibilityService:

    @staticmethod
    async def check_customer(
        db: AsyncSession,
        ctx: TenantContext,
        customer_id: str,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Raise a CustomerNotEligible subclass if the customer may not buy.

        Raises:
            DateOfBirthRequired, UnderMinimumAge,
            IdVerificationRequired, IdVerificationExpired
        """
        tenant = await TenantService.get_tenant_by_id(db, ctx.tenant_id)
        if tenant is None:
            raise TenantNotFound(ctx.subdomain)
        if not tenant.age_verification_required:
            return

        customer = await UserService.get_user(db, ctx, customer_id)
        if customer is None:
            logger.debug("Walk-in customer, eligibility checked at the counter", customer_id=customer_id)
            return

        now = now or utcnow()
        if customer.date_of_birth is None:
            logger.warning("Purchase blocked: no date of birth", customer_id=customer_id)
            raise DateOfBirthRequired(customer_id)

        minimum_age = settings.MEDICAL_MINIMUM_AGE if tenant.medical_only else settings.MINIMUM_AGE
        if age_on(customer.date_of_birth, ctx.local_date(now)) < minimum_age:
            logger.warning(
                "Purchase blocked: under minimum age",
                customer_id=customer_id,
                minimum_age=minimum_age,
            )
            raise UnderMinimumAge(customer_id, minimum_age)

        if tenant.require_id_scan:
            if customer.id_verified_at is None:
                logger.warning("Purchase blocked: ID not verified", customer_id=customer_id)
                raise IdVerificationRequired(customer_id)
            verified_at = as_utc(customer.id_verified_at)
            max_age = settings.ID_VERIFICATION_MAX_AGE_DAYS
            if verified_at < now - timedelta(days=max_age):
                logger.warning(
                    "Purchase blocked: ID verification expired",
                    customer_id=customer_id,
                    verified_at=verified_at.isoformat(),
                )
                raise IdVerificationExpired(customer_id, verified_at.isoformat(), max_age)

    @staticmethod
    async def verify_id(
        db: AsyncSession,
        ctx: TenantContext,
        dispensary_id: str,
        customer_id: str,
        verification_type: str,
        verified: bool,
        actor_id: Optional[str] = None,
        date_of_birth: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> ComplianceLogEntry:
        """
        Record an ID check as an ID_VERIFICATION event. A successful check
        on a customer with an account also stamps id_verified_at and, when
        given, the date of birth read from the ID.
        """
        entry = await AuditService.record(
            db,
            dispensary_id,
            ComplianceEventType.ID_VERIFICATION,
            IdVerificationDetails(
                customer_id=customer_id,
                verification_type=verification_type,
                verified=verified,
            ),
            actor_id=actor_id,
        )
        if verified:
            customer = await UserService.get_user(db, ctx, customer_id)
            if customer is not None:
                customer.id_verified_at = now or utcnow()
                if date_of_birth is not None:
                    customer.date_of_birth = date_of_birth
                await db.flush()
        logger.info(
            "ID verification recorded",
            dispensary_id=dispensary_id,
            customer_id=customer_id,
            verification_type=verification_type,
            verified=verified,
        )
        return entry
