"""
Tests for daily sales reports and sales analytics.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from compliance_api.models.compliance import DailySalesReport
from compliance_api.schemas.report import DailySalesReportRead
from compliance_api.services.report_service import ReportService, money

FEB_10 = date(2026, 2, 10)


def _at(day: int, hour: int, month: int = 2) -> datetime:
    """UTC instant; New York is UTC-5 in February."""
    return datetime(2026, month, day, hour, 0, tzinfo=timezone.utc)


def _items(*lines):
    return [
        {"product_name": name, "product_category": category, "quantity": qty, "line_total": total}
        for name, category, qty, total in lines
    ]


class TestGenerateDailyReport:
    """Tests for ReportService.generate_daily_report."""

    @pytest.mark.asyncio
    async def test_totals(self, db_session, ctx, dispensary, make_order):
        """Test completed orders are summed and cancelled ones only counted."""
        await make_order(_at(10, 15), "90.00", tax="18.68", customer_id="c-1")
        await make_order(_at(10, 16), "55.00", customer_id="c-2")
        await make_order(_at(10, 17), "30.00", status="cancelled", customer_id="c-3")

        report = await ReportService.generate_daily_report(db_session, ctx, dispensary.id, FEB_10)

        assert report.total_orders == 2
        assert report.total_revenue == Decimal("145.00")
        assert report.total_tax == Decimal("18.68")
        assert report.average_order_value == Decimal("72.50")
        assert report.cancelled_orders == 1
        assert report.unique_customers == 2
        assert report.refunded_amount == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_no_completed_orders(self, db_session, ctx, dispensary, make_order):
        """Test a day without sales reports zero average order value."""
        await make_order(_at(10, 15), "30.00", status="cancelled")

        report = await ReportService.generate_daily_report(db_session, ctx, dispensary.id, FEB_10)

        assert report.total_orders == 0
        assert report.total_revenue == Decimal("0.00")
        assert report.average_order_value == Decimal("0.00")
        assert report.cancelled_orders == 1
        assert report.sales_by_category == {}

    @pytest.mark.asyncio
    async def test_refunds_and_categories(self, db_session, ctx, dispensary, make_order):
        """Test refunded totals and per-category breakdown."""
        await make_order(
            _at(10, 15), "100.00",
            items=_items(("Blue Dream", "flower", 2, "80.00"), ("Gummies", "edible", 1, "20.00")),
        )
        await make_order(_at(10, 16), "45.00", status="refunded")

        report = await ReportService.generate_daily_report(db_session, ctx, dispensary.id, FEB_10)

        assert report.refunded_amount == Decimal("45.00")
        assert report.total_items_sold == 3
        assert report.sales_by_category == {
            "edible": {"count": 1, "revenue": "20.00"},
            "flower": {"count": 2, "revenue": "80.00"},
        }

    @pytest.mark.asyncio
    async def test_local_day_boundaries(self, db_session, ctx, dispensary, make_order):
        """Test orders are assigned to the New York calendar day they were placed on."""
        # 2026-02-10 23:59 EST and 2026-02-11 00:00 EST
        await make_order(datetime(2026, 2, 11, 4, 59, tzinfo=timezone.utc), "10.00")
        await make_order(datetime(2026, 2, 11, 5, 0, tzinfo=timezone.utc), "20.00")
        # 2026-02-09 23:00 EST
        await make_order(datetime(2026, 2, 10, 4, 0, tzinfo=timezone.utc), "40.00")

        report = await ReportService.generate_daily_report(db_session, ctx, dispensary.id, FEB_10)

        assert report.total_orders == 1
        assert report.total_revenue == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_regeneration_is_idempotent(self, db_session, ctx, dispensary, make_order):
        """Test regenerating from unchanged orders overwrites one row with equal content."""
        await make_order(_at(10, 15), "90.00", tax="18.68")
        await make_order(_at(10, 16), "55.00")

        first = await ReportService.generate_daily_report(db_session, ctx, dispensary.id, FEB_10)
        first_json = DailySalesReportRead.model_validate(first).model_dump_json()
        await db_session.commit()

        second = await ReportService.generate_daily_report(db_session, ctx, dispensary.id, FEB_10)
        second_json = DailySalesReportRead.model_validate(second).model_dump_json()
        await db_session.commit()

        assert first_json == second_json
        count = await db_session.execute(
            select(func.count()).select_from(DailySalesReport)
        )
        assert count.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_regeneration_picks_up_changes(self, db_session, ctx, dispensary, make_order):
        """Test a later run replaces totals rather than adding to them."""
        await make_order(_at(10, 15), "90.00")
        await ReportService.generate_daily_report(db_session, ctx, dispensary.id, FEB_10)

        await make_order(_at(10, 16), "10.00")
        report = await ReportService.generate_daily_report(db_session, ctx, dispensary.id, FEB_10)

        assert report.total_orders == 2
        assert report.total_revenue == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_list_reports(self, db_session, ctx, dispensary, make_order):
        """Test stored reports come back oldest first within the range."""
        for day in (9, 10, 11):
            await ReportService.generate_daily_report(
                db_session, ctx, dispensary.id, date(2026, 2, day)
            )
        reports = await ReportService.list_reports(
            db_session, dispensary.id, date(2026, 2, 10), date(2026, 2, 11)
        )
        assert [r.report_date for r in reports] == [date(2026, 2, 10), date(2026, 2, 11)]


class TestRevenueByPeriod:
    """Tests for revenue bucketing."""

    @pytest.mark.asyncio
    async def test_daily_buckets(self, db_session, ctx, dispensary, make_order):
        await make_order(_at(9, 15), "10.00", tax="1.00")
        await make_order(_at(10, 15), "20.00", tax="2.00")
        await make_order(_at(10, 16), "30.00", tax="3.00", excise="1.50")
        await make_order(_at(10, 17), "99.00", status="cancelled")

        buckets = await ReportService.revenue_by_period(
            db_session, ctx, dispensary.id, "day", date(2026, 2, 9), date(2026, 2, 10)
        )

        assert [(b.period, b.order_count, b.total_revenue) for b in buckets] == [
            ("2026-02-09", 1, Decimal("10.00")),
            ("2026-02-10", 2, Decimal("50.00")),
        ]
        assert buckets[1].total_tax == Decimal("5.00")
        assert buckets[1].total_excise_tax == Decimal("1.50")

    @pytest.mark.asyncio
    async def test_weekly_buckets_start_monday(self, db_session, ctx, dispensary, make_order):
        """Test weeks are keyed by their Monday (2026-02-09 is a Monday)."""
        await make_order(_at(9, 15), "10.00")
        await make_order(_at(15, 15), "20.00")
        await make_order(_at(16, 15), "30.00")

        buckets = await ReportService.revenue_by_period(
            db_session, ctx, dispensary.id, "week", date(2026, 2, 9), date(2026, 2, 16)
        )

        assert [(b.period, b.total_revenue) for b in buckets] == [
            ("2026-02-09", Decimal("30.00")),
            ("2026-02-16", Decimal("30.00")),
        ]

    @pytest.mark.asyncio
    async def test_monthly_buckets_use_local_date(self, db_session, ctx, dispensary, make_order):
        """Test an order late on Jan 31 in New York lands in January."""
        # 2026-01-31 22:00 EST
        await make_order(datetime(2026, 2, 1, 3, 0, tzinfo=timezone.utc), "10.00")
        await make_order(_at(10, 15), "20.00")

        buckets = await ReportService.revenue_by_period(
            db_session, ctx, dispensary.id, "month", date(2026, 1, 1), date(2026, 2, 28)
        )

        assert [(b.period, b.total_revenue) for b in buckets] == [
            ("2026-01", Decimal("10.00")),
            ("2026-02", Decimal("20.00")),
        ]


class TestTopProducts:
    """Tests for top-products ranking."""

    @pytest.mark.asyncio
    async def test_ranked_by_revenue(self, db_session, ctx, dispensary, make_order):
        await make_order(
            _at(10, 15), "100.00",
            items=_items(("Blue Dream", "flower", 2, "70.00"), ("Gummies", "edible", 3, "30.00")),
        )
        await make_order(
            _at(10, 16), "50.00",
            items=_items(("Gummies", "edible", 5, "50.00")),
        )
        await make_order(
            _at(10, 17), "500.00", status="cancelled",
            items=_items(("Vape Cart", "vape", 1, "500.00")),
        )

        products = await ReportService.top_products(
            db_session, ctx, dispensary.id, FEB_10, FEB_10
        )

        assert [(p.product_name, p.total_quantity, p.total_revenue) for p in products] == [
            ("Gummies", 8, Decimal("80.00")),
            ("Blue Dream", 2, Decimal("70.00")),
        ]

    @pytest.mark.asyncio
    async def test_limit(self, db_session, ctx, dispensary, make_order):
        await make_order(
            _at(10, 15), "60.00",
            items=_items(("A", "flower", 1, "10.00"), ("B", "flower", 1, "20.00"), ("C", "flower", 1, "30.00")),
        )
        products = await ReportService.top_products(
            db_session, ctx, dispensary.id, FEB_10, FEB_10, limit=2
        )
        assert [p.product_name for p in products] == ["C", "B"]


def test_money_rounds_half_up():
    assert money(Decimal("72.505")) == Decimal("72.51")
    assert money(Decimal("1")) == Decimal("1.00")
