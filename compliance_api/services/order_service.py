"""
services/order_service.py
-------------------------
Order placement and status transitions, as far as compliance needs them.

Critical invariants:
  - The customer's age and ID verification are checked before any quota
    is checked or reserved; an ineligible customer leaves no limit check.
  - An order is only written after every regulated category it contains has
    passed the purchase-limit check, and the customer's quota reservation is
    held from the check until the order's transaction ends.
  - Completing an order and recording its SALE event happen in one
    transaction: if the audit write fails, the completion fails with it.
  - Every query includes tenant_id in the WHERE clause.
"""

import uuid
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_api.core.config import settings
from compliance_api.core.context import TenantContext, utcnow
from compliance_api.core.exceptions import (
    InvalidOrderTransition,
    OrderNotFound,
    PurchaseLimitExceeded,
)
from compliance_api.core.logging import get_logger
from compliance_api.models.order import Order, OrderItem, OrderStatus
from compliance_api.schemas.order import OrderCreate
from compliance_api.services.audit_service import AuditService
from compliance_api.services.eligibility_service import EligibilityService
from compliance_api.services.quota_service import QuotaService
from compliance_api.services.report_service import money
from compliance_api.services.tenant_service import DispensaryService

logger = get_logger(__name__)

# target status → statuses it may be reached from
TRANSITIONS = {
    OrderStatus.confirmed: {OrderStatus.pending},
    OrderStatus.completed: {OrderStatus.pending, OrderStatus.confirmed},
    OrderStatus.cancelled: {OrderStatus.pending, OrderStatus.confirmed},
    OrderStatus.refunded: {OrderStatus.completed},
}


def _order_number(at: datetime) -> str:
    return f"ORD-{at:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


class OrderService:

    @staticmethod
    async def place_order(
        db: AsyncSession,
        ctx: TenantContext,
        data: OrderCreate,
        customer_id: str,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Check the customer's eligibility and daily limits and create a
        pending order.

        A rejected check is committed before PurchaseLimitExceeded is raised,
        so the refusal stays in the compliance log even though no order is
        written.
        """
        await DispensaryService.get_dispensary(db, ctx, data.dispensary_id)
        now = now or utcnow()
        await EligibilityService.check_customer(db, ctx, customer_id, now=now)

        items = [
            OrderItem(
                position=position,
                product_name=item.product_name,
                variant_name=item.variant_name,
                product_category=item.product_category.lower(),
                quantity=item.quantity,
                weight_grams=item.weight_grams,
                unit_price=money(item.unit_price),
                line_total=money(item.unit_price * item.quantity),
                batch_number=item.batch_number,
                license_number=item.license_number,
            )
            for position, item in enumerate(data.items)
        ]
        subtotal = money(sum((i.line_total for i in items), Decimal("0")))
        tax_amount = money(subtotal * data.tax_rate)
        excise_tax = money(subtotal * data.excise_rate)

        regulated = settings.PURCHASE_LIMITS.get(ctx.jurisdiction.upper(), {})
        weights: Dict[str, Decimal] = defaultdict(Decimal)
        for item in items:
            if item.product_category in regulated:
                weights[item.product_category] += item.grams

        async with QuotaService.reservation(db, ctx, data.dispensary_id, customer_id, now=now):
            for category, grams in sorted(weights.items()):
                decision = await QuotaService.check_purchase_limit(
                    db, ctx, data.dispensary_id, customer_id, grams,
                    product_category=category, actor_id=actor_id, now=now,
                )
                if not decision.within_limit:
                    await db.commit()
                    raise PurchaseLimitExceeded(
                        decision.daily_total, grams, decision.limit, category
                    )

            order = Order(
                order_number=_order_number(now),
                tenant_id=ctx.tenant_id,
                dispensary_id=data.dispensary_id,
                customer_id=customer_id,
                status=OrderStatus.pending.value,
                subtotal=subtotal,
                tax_amount=tax_amount,
                excise_tax=excise_tax,
                total=money(subtotal + tax_amount + excise_tax),
                created_at=now,
                items=items,
            )
            db.add(order)
            await db.flush()

        logger.info(
            "Order placed",
            order_id=order.id,
            order_number=order.order_number,
            dispensary_id=order.dispensary_id,
            customer_id=customer_id,
            total=str(order.total),
        )
        return order

    @staticmethod
    async def get_order(db: AsyncSession, ctx: TenantContext, order_id: str) -> Order:
        result = await db.execute(
            select(Order).where(Order.id == order_id, Order.tenant_id == ctx.tenant_id)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFound(order_id)
        return order

    @staticmethod
    def _transition(order: Order, target: OrderStatus) -> None:
        current = OrderStatus(order.status)
        if current not in TRANSITIONS[target]:
            raise InvalidOrderTransition(order.id, current.value, target.value)
        order.status = target.value

    @staticmethod
    async def confirm_order(db: AsyncSession, ctx: TenantContext, order_id: str) -> Order:
        order = await OrderService.get_order(db, ctx, order_id)
        OrderService._transition(order, OrderStatus.confirmed)
        await db.flush()
        logger.info("Order confirmed", order_id=order.id)
        return order

    @staticmethod
    async def complete_order(
        db: AsyncSession, ctx: TenantContext, order_id: str, actor_id: Optional[str]
    ) -> Order:
        """Mark the order completed and record its SALE event."""
        order = await OrderService.get_order(db, ctx, order_id)
        OrderService._transition(order, OrderStatus.completed)
        order.completed_at = utcnow()
        await db.flush()
        await AuditService.log_sale(db, order, actor_id)
        logger.info("Order completed", order_id=order.id, total=str(order.total))
        return order

    @staticmethod
    async def cancel_order(db: AsyncSession, ctx: TenantContext, order_id: str) -> Order:
        order = await OrderService.get_order(db, ctx, order_id)
        OrderService._transition(order, OrderStatus.cancelled)
        await db.flush()
        logger.info("Order cancelled", order_id=order.id)
        return order

    @staticmethod
    async def refund_order(
        db: AsyncSession,
        ctx: TenantContext,
        order_id: str,
        actor_id: Optional[str],
        reason: Optional[str] = None,
    ) -> Order:
        """Refund a completed order and record its RETURN event."""
        order = await OrderService.get_order(db, ctx, order_id)
        OrderService._transition(order, OrderStatus.refunded)
        await db.flush()
        await AuditService.log_return(db, order, actor_id, reason)
        logger.info("Order refunded", order_id=order.id, refunded_amount=str(order.total))
        return order
