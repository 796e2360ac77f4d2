"""
services/quota_service.py
-------------------------
Per-customer daily purchase limits.

A check runs: compute window → sum existing orders → compare → log outcome
→ return decision. The window is the dispensary's current local calendar day
[local midnight, next local midnight), not a trailing 24 hours.

The checker never blocks a sale by itself: it returns a PurchaseLimitResult
and records a PURCHASE_LIMIT_CHECK event whatever the outcome. Order
placement enforces the decision, holding QuotaService.reservation() from the
check until its transaction commits or rolls back, so two concurrent orders
for the same customer cannot both pass on the same daily total.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_api.core.config import settings
from compliance_api.core.context import TenantContext
from compliance_api.core.exceptions import UnknownPurchaseLimit
from compliance_api.core.logging import get_logger
from compliance_api.db.locks import serialized
from compliance_api.models.compliance import ComplianceEventType
from compliance_api.models.order import Order, OrderItem, OrderStatus
from compliance_api.schemas.compliance import PurchaseLimitCheckDetails, PurchaseLimitResult
from compliance_api.services.audit_service import AuditService

logger = get_logger(__name__)

VOIDED_STATUSES = (OrderStatus.cancelled.value, OrderStatus.refunded.value)


class QuotaService:

    @staticmethod
    def resolve_limit(ctx: TenantContext, product_category: str) -> Decimal:
        """Grams allowed per day for the tenant's jurisdiction and the category."""
        limits = settings.PURCHASE_LIMITS.get(ctx.jurisdiction.upper(), {})
        limit = limits.get(product_category.lower())
        if limit is None:
            raise UnknownPurchaseLimit(ctx.jurisdiction, product_category)
        return Decimal(limit)

    @staticmethod
    async def daily_total(
        db: AsyncSession,
        ctx: TenantContext,
        dispensary_id: str,
        customer_id: str,
        product_category: str,
        day: date,
    ) -> Decimal:
        """Grams of ``product_category`` on the customer's orders placed on ``day``."""
        start, end = ctx.day_bounds(day)
        stmt = (
            select(OrderItem)
            .join(Order, OrderItem.order_id == Order.id)
            .where(
                Order.tenant_id == ctx.tenant_id,
                Order.dispensary_id == dispensary_id,
                Order.customer_id == customer_id,
                Order.created_at >= start,
                Order.created_at < end,
                OrderItem.product_category == product_category.lower(),
            )
        )
        if settings.QUOTA_EXCLUDE_VOIDED_ORDERS:
            stmt = stmt.where(Order.status.not_in(VOIDED_STATUSES))
        result = await db.execute(stmt)
        return sum((item.grams for item in result.scalars()), Decimal("0"))

    @staticmethod
    async def check_purchase_limit(
        db: AsyncSession,
        ctx: TenantContext,
        dispensary_id: str,
        customer_id: str,
        requested_weight: Decimal,
        product_category: str = "flower",
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PurchaseLimitResult:
        """
        Decide whether ``requested_weight`` more grams keep the customer within
        today's limit, and record the decision in the compliance log.

        Callers must reject the purchase when within_limit is False.
        """
        requested_weight = Decimal(requested_weight)
        category = product_category.lower()
        limit = QuotaService.resolve_limit(ctx, category)
        window_date = ctx.local_date(now)

        daily_total = await QuotaService.daily_total(
            db, ctx, dispensary_id, customer_id, category, window_date
        )
        within_limit = daily_total + requested_weight <= limit

        await AuditService.record(
            db,
            dispensary_id,
            ComplianceEventType.PURCHASE_LIMIT_CHECK,
            PurchaseLimitCheckDetails(
                customer_id=customer_id,
                daily_total=daily_total,
                requested_weight=requested_weight,
                within_limit=within_limit,
                limit=limit,
                product_category=category,
                jurisdiction=ctx.jurisdiction,
            ),
            actor_id=actor_id or customer_id,
        )

        log = logger.info if within_limit else logger.warning
        log(
            "Purchase limit checked",
            dispensary_id=dispensary_id,
            customer_id=customer_id,
            product_category=category,
            daily_total=str(daily_total),
            requested_weight=str(requested_weight),
            limit=str(limit),
            within_limit=within_limit,
        )
        return PurchaseLimitResult(
            within_limit=within_limit,
            daily_total=daily_total,
            limit=limit,
            requested_weight=requested_weight,
            product_category=category,
            jurisdiction=ctx.jurisdiction,
            window_date=window_date,
        )

    @staticmethod
    @asynccontextmanager
    async def reservation(
        db: AsyncSession,
        ctx: TenantContext,
        dispensary_id: str,
        customer_id: str,
        now: Optional[datetime] = None,
    ) -> AsyncIterator[None]:
        """
        Exclusive hold on a customer's quota for the current local day.
        Enclose the check and the insert of the order that consumes it; the
        hold lasts until the session's transaction ends.
        """
        day = ctx.local_date(now)
        async with serialized(db, f"quota:{dispensary_id}:{customer_id}:{day.isoformat()}"):
            yield
