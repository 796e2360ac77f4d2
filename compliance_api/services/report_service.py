"""
services/report_service.py
--------------------------
Daily sales reports and sales analytics.

generate_daily_report recomputes one (dispensary, local calendar day) from
the source orders every time and overwrites the stored row, so re-running
it is idempotent and concurrent runs for the same day end as last write
wins, never as a sum of both.

Revenue buckets and top products are computed from orders and their line
items directly, not from stored reports.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_api.core.context import TenantContext, as_utc
from compliance_api.core.exceptions import ReportGenerationFailure
from compliance_api.core.logging import get_logger
from compliance_api.db.locks import serialized
from compliance_api.models.compliance import DailySalesReport
from compliance_api.models.order import Order, OrderStatus
from compliance_api.schemas.compliance import Period
from compliance_api.schemas.report import RevenueBucket, TopProduct

logger = get_logger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


class ReportService:

    @staticmethod
    async def _orders(
        db: AsyncSession,
        ctx: TenantContext,
        dispensary_id: str,
        start_day: date,
        end_day: date,
        status: Optional[OrderStatus] = None,
    ) -> list[Order]:
        """Orders (items eager-loaded) placed on local days start_day..end_day."""
        start, end = ctx.range_bounds(start_day, end_day)
        stmt = select(Order).where(
            Order.tenant_id == ctx.tenant_id,
            Order.dispensary_id == dispensary_id,
            Order.created_at >= start,
            Order.created_at < end,
        )
        if status is not None:
            stmt = stmt.where(Order.status == status.value)
        result = await db.execute(stmt.order_by(Order.created_at, Order.id))
        return list(result.scalars().all())

    @staticmethod
    async def generate_daily_report(
        db: AsyncSession, ctx: TenantContext, dispensary_id: str, report_date: date
    ) -> DailySalesReport:
        """
        Create or overwrite the report for ``report_date``.

        Raises:
            ReportGenerationFailure: a storage error occurred; safe to retry.
        """
        try:
            async with serialized(db, f"daily-report:{dispensary_id}:{report_date.isoformat()}"):
                orders = await ReportService._orders(
                    db, ctx, dispensary_id, report_date, report_date
                )
                report = await ReportService._get_report(db, dispensary_id, report_date)
                if report is None:
                    report = DailySalesReport(dispensary_id=dispensary_id, report_date=report_date)
                    db.add(report)
                ReportService._fill(report, orders)
                await db.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "Daily report generation failed",
                dispensary_id=dispensary_id,
                report_date=report_date.isoformat(),
                error=str(exc),
            )
            raise ReportGenerationFailure(
                dispensary_id=dispensary_id, report_date=report_date.isoformat()
            ) from exc

        logger.info(
            "Daily report generated",
            dispensary_id=dispensary_id,
            report_date=report_date.isoformat(),
            total_orders=report.total_orders,
            total_revenue=str(report.total_revenue),
        )
        return report

    @staticmethod
    def _fill(report: DailySalesReport, orders: list[Order]) -> None:
        completed = [o for o in orders if o.status == OrderStatus.completed.value]
        cancelled = [o for o in orders if o.status == OrderStatus.cancelled.value]
        refunded = [o for o in orders if o.status == OrderStatus.refunded.value]

        total_revenue = sum((Decimal(o.total) for o in completed), ZERO)
        by_category: Dict[str, Dict[str, Decimal]] = defaultdict(
            lambda: {"count": ZERO, "revenue": ZERO}
        )
        items_sold = 0
        for order in completed:
            for item in order.items:
                items_sold += item.quantity
                bucket = by_category[item.product_category]
                bucket["count"] += item.quantity
                bucket["revenue"] += Decimal(item.line_total)

        report.total_orders = len(completed)
        report.total_revenue = money(total_revenue)
        report.total_tax = money(sum((Decimal(o.tax_amount) for o in completed), ZERO))
        report.total_excise_tax = money(sum((Decimal(o.excise_tax) for o in completed), ZERO))
        report.total_items_sold = items_sold
        report.unique_customers = len({o.customer_id for o in completed})
        report.average_order_value = (
            money(total_revenue / len(completed)) if completed else money(ZERO)
        )
        report.cancelled_orders = len(cancelled)
        report.refunded_amount = money(sum((Decimal(o.total) for o in refunded), ZERO))
        report.sales_by_category = {
            category: {"count": int(values["count"]), "revenue": str(money(values["revenue"]))}
            for category, values in sorted(by_category.items())
        }

    @staticmethod
    async def _get_report(
        db: AsyncSession, dispensary_id: str, report_date: date
    ) -> DailySalesReport | None:
        result = await db.execute(
            select(DailySalesReport).where(
                DailySalesReport.dispensary_id == dispensary_id,
                DailySalesReport.report_date == report_date,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_reports(
        db: AsyncSession, dispensary_id: str, start_date: date, end_date: date
    ) -> list[DailySalesReport]:
        """Stored reports for start_date..end_date inclusive, oldest first."""
        result = await db.execute(
            select(DailySalesReport)
            .where(
                DailySalesReport.dispensary_id == dispensary_id,
                DailySalesReport.report_date >= start_date,
                DailySalesReport.report_date <= end_date,
            )
            .order_by(DailySalesReport.report_date)
        )
        return list(result.scalars().all())

    @staticmethod
    async def revenue_by_period(
        db: AsyncSession,
        ctx: TenantContext,
        dispensary_id: str,
        period: Period,
        start_date: date,
        end_date: date,
    ) -> list[RevenueBucket]:
        """
        Completed-order revenue bucketed by local day (YYYY-MM-DD), week
        (YYYY-MM-DD of its Monday) or month (YYYY-MM).
        """
        orders = await ReportService._orders(
            db, ctx, dispensary_id, start_date, end_date, status=OrderStatus.completed
        )
        buckets: Dict[str, Dict[str, Decimal]] = {}
        for order in orders:
            day = as_utc(order.created_at).astimezone(ctx.tz).date()
            if period == "day":
                key = day.isoformat()
            elif period == "week":
                key = (day - timedelta(days=day.weekday())).isoformat()
            else:
                key = day.strftime("%Y-%m")
            bucket = buckets.setdefault(
                key, {"count": ZERO, "revenue": ZERO, "tax": ZERO, "excise": ZERO}
            )
            bucket["count"] += 1
            bucket["revenue"] += Decimal(order.total)
            bucket["tax"] += Decimal(order.tax_amount)
            bucket["excise"] += Decimal(order.excise_tax)

        return [
            RevenueBucket(
                period=key,
                order_count=int(values["count"]),
                total_revenue=money(values["revenue"]),
                total_tax=money(values["tax"]),
                total_excise_tax=money(values["excise"]),
            )
            for key, values in sorted(buckets.items())
        ]

    @staticmethod
    async def top_products(
        db: AsyncSession,
        ctx: TenantContext,
        dispensary_id: str,
        start_date: date,
        end_date: date,
        limit: int = 10,
    ) -> list[TopProduct]:
        """Products of completed orders ranked by line-item revenue."""
        orders = await ReportService._orders(
            db, ctx, dispensary_id, start_date, end_date, status=OrderStatus.completed
        )
        quantities: Dict[str, int] = defaultdict(int)
        revenue: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for order in orders:
            for item in order.items:
                quantities[item.product_name] += item.quantity
                revenue[item.product_name] += Decimal(item.line_total)

        ranked = sorted(revenue, key=lambda name: (-revenue[name], name))[:limit]
        return [
            TopProduct(
                product_name=name,
                total_quantity=quantities[name],
                total_revenue=money(revenue[name]),
            )
            for name in ranked
        ]
