"""
api/routes/compliance.py
------------------------
Compliance trail, purchase limits, daily reports and sales analytics.

Date parameters are calendar dates in the tenant's timezone; a range
start_date..end_date covers both days completely.

POST /compliance/events                  - Staff: record an inventory / recall / ID event.
POST /compliance/id-verifications        - Staff: record an ID check and stamp the customer.
GET  /compliance/logs                    - Admin: paginated trail.
GET  /compliance/logs/export             - Admin: regulator CSV.
GET  /compliance/logs/verify             - Admin: recompute the hash chain.
GET  /compliance/purchase-limit          - Staff: advisory limit check (logged).
POST /compliance/reports/daily           - Admin: generate / regenerate a daily report.
GET  /compliance/analytics/sales         - Admin: stored daily reports.
GET  /compliance/analytics/revenue       - Admin: revenue by day / week / month.
GET  /compliance/analytics/top-products  - Admin: best sellers by revenue.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import Response

from compliance_api.core.context import TenantContext
from compliance_api.dependencies import AdminUser, DbSession, StaffUser, TenantCtx
from compliance_api.models.compliance import ComplianceEventType
from compliance_api.schemas.compliance import (
    ChainVerification,
    ComplianceEventCreate,
    ComplianceLogPage,
    ComplianceLogRead,
    IdVerificationCreate,
    Period,
    PurchaseLimitResult,
)
from compliance_api.schemas.report import (
    DailyReportRequest,
    DailySalesReportRead,
    RevenueBucket,
    TopProduct,
)
from compliance_api.services.audit_service import AuditService
from compliance_api.services.eligibility_service import EligibilityService
from compliance_api.services.quota_service import QuotaService
from compliance_api.services.report_service import ReportService
from compliance_api.services.tenant_service import DispensaryService

router = APIRouter(prefix="/compliance", tags=["Compliance"])


def _bounds(ctx: TenantContext, start_date: date, end_date: date) -> tuple[datetime, datetime]:
    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end_date must not be before start_date",
        )
    return ctx.range_bounds(start_date, end_date)


@router.post(
    "/events",
    response_model=ComplianceLogRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record a compliance event",
)
async def record_event(
    body: ComplianceEventCreate, ctx: TenantCtx, db: DbSession, staff: StaffUser
) -> ComplianceLogRead:
    """
    Inventory adjustments, receipts, destructions, recalls and ID checks.
    Sales, returns and limit checks are recorded by the order flow.
    """
    await DispensaryService.get_dispensary(db, ctx, body.dispensary_id)
    entry = await AuditService.record(
        db,
        body.dispensary_id,
        body.event_type,
        body.details,
        actor_id=staff.id,
        order_id=body.order_id,
    )
    return ComplianceLogRead.model_validate(entry)


@router.post(
    "/id-verifications",
    response_model=ComplianceLogRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record an ID verification",
)
async def verify_id(
    body: IdVerificationCreate, ctx: TenantCtx, db: DbSession, staff: StaffUser
) -> ComplianceLogRead:
    """
    A successful check on a customer account renews its ID verification,
    which checkout requires for tenants that scan IDs.
    """
    await DispensaryService.get_dispensary(db, ctx, body.dispensary_id)
    entry = await EligibilityService.verify_id(
        db,
        ctx,
        body.dispensary_id,
        body.customer_id,
        body.verification_type,
        body.verified,
        actor_id=staff.id,
        date_of_birth=body.date_of_birth,
    )
    return ComplianceLogRead.model_validate(entry)


@router.get("/logs", response_model=ComplianceLogPage, summary="Query the compliance trail")
async def get_compliance_logs(
    ctx: TenantCtx,
    db: DbSession,
    admin: AdminUser,
    dispensary_id: str = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    event_type: Optional[ComplianceEventType] = Query(default=None),
    actor_id: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
) -> ComplianceLogPage:
    await DispensaryService.get_dispensary(db, ctx, dispensary_id)
    start, end = _bounds(ctx, start_date, end_date)
    total, total_pages, entries = await AuditService.query_logs(
        db, dispensary_id, start, end,
        event_type=event_type, actor_id=actor_id, page=page, limit=limit,
    )
    return ComplianceLogPage(
        items=[ComplianceLogRead.model_validate(e) for e in entries],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
    )


@router.get(
    "/logs/export",
    response_class=Response,
    summary="Export the compliance trail for regulators (CSV)",
)
async def export_compliance_logs(
    ctx: TenantCtx,
    db: DbSession,
    admin: AdminUser,
    dispensary_id: str = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
) -> Response:
    await DispensaryService.get_dispensary(db, ctx, dispensary_id)
    start, end = _bounds(ctx, start_date, end_date)
    document = await AuditService.export_for_regulator(db, dispensary_id, start, end)
    filename = f"compliance-{dispensary_id}-{start_date.isoformat()}-{end_date.isoformat()}.csv"
    return Response(
        content=document,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get(
    "/logs/verify",
    response_model=ChainVerification,
    summary="Verify the dispensary's hash chain",
)
async def verify_compliance_chain(
    ctx: TenantCtx,
    db: DbSession,
    admin: AdminUser,
    dispensary_id: str = Query(...),
) -> ChainVerification:
    await DispensaryService.get_dispensary(db, ctx, dispensary_id)
    return await AuditService.verify_chain(db, dispensary_id)


@router.get(
    "/purchase-limit",
    response_model=PurchaseLimitResult,
    summary="Check a customer's remaining daily limit",
)
async def check_purchase_limit(
    ctx: TenantCtx,
    db: DbSession,
    staff: StaffUser,
    dispensary_id: str = Query(...),
    customer_id: str = Query(...),
    weight: Decimal = Query(..., gt=0, description="Requested weight in grams"),
    category: str = Query(default="flower"),
) -> PurchaseLimitResult:
    await DispensaryService.get_dispensary(db, ctx, dispensary_id)
    return await QuotaService.check_purchase_limit(
        db, ctx, dispensary_id, customer_id, weight,
        product_category=category, actor_id=staff.id,
    )


@router.post(
    "/reports/daily",
    response_model=DailySalesReportRead,
    summary="Generate (or regenerate) a daily sales report",
)
async def generate_daily_report(
    body: DailyReportRequest, ctx: TenantCtx, db: DbSession, admin: AdminUser
) -> DailySalesReportRead:
    await DispensaryService.get_dispensary(db, ctx, body.dispensary_id)
    report = await ReportService.generate_daily_report(db, ctx, body.dispensary_id, body.date)
    return DailySalesReportRead.model_validate(report)


@router.get(
    "/analytics/sales",
    response_model=list[DailySalesReportRead],
    summary="Stored daily reports in a date range",
)
async def get_sales_analytics(
    ctx: TenantCtx,
    db: DbSession,
    admin: AdminUser,
    dispensary_id: str = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
) -> list[DailySalesReportRead]:
    await DispensaryService.get_dispensary(db, ctx, dispensary_id)
    _bounds(ctx, start_date, end_date)
    reports = await ReportService.list_reports(db, dispensary_id, start_date, end_date)
    return [DailySalesReportRead.model_validate(r) for r in reports]


@router.get(
    "/analytics/revenue",
    response_model=list[RevenueBucket],
    summary="Revenue by day, week or month",
)
async def get_revenue_by_period(
    ctx: TenantCtx,
    db: DbSession,
    admin: AdminUser,
    dispensary_id: str = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    period: Period = Query(default="day"),
) -> list[RevenueBucket]:
    await DispensaryService.get_dispensary(db, ctx, dispensary_id)
    _bounds(ctx, start_date, end_date)
    return await ReportService.revenue_by_period(
        db, ctx, dispensary_id, period, start_date, end_date
    )


@router.get(
    "/analytics/top-products",
    response_model=list[TopProduct],
    summary="Top products by revenue",
)
async def get_top_products(
    ctx: TenantCtx,
    db: DbSession,
    admin: AdminUser,
    dispensary_id: str = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    limit: int = Query(default=10, ge=1, le=100),
) -> list[TopProduct]:
    await DispensaryService.get_dispensary(db, ctx, dispensary_id)
    _bounds(ctx, start_date, end_date)
    return await ReportService.top_products(
        db, ctx, dispensary_id, start_date, end_date, limit=limit
    )
