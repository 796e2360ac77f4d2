"""
generate_reports.py
-------------------
End-of-day job: (re)generate daily sales reports for every dispensary.

Each dispensary is processed in its own transaction. A failure is logged
and the run continues with the next dispensary; the script exits non-zero
if any report failed, so the scheduler can retry (regeneration is
idempotent).

Usage:
    python generate_reports.py                 # yesterday, in each tenant's timezone
    python generate_reports.py 2026-02-10      # a specific date
    python generate_reports.py 2026-02-10 green-leaf   # one tenant only

Schedule shortly after midnight in the earliest tenant timezone, e.g.:
    15 5 * * *  cd /srv/compliance && python generate_reports.py
"""

import asyncio
import sys
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select

from compliance_api.core.context import TenantContext
from compliance_api.core.exceptions import ComplianceError
from compliance_api.core.logging import configure_logging, get_logger
from compliance_api.db.session import AsyncSessionLocal, engine
from compliance_api.models import Dispensary, Tenant
from compliance_api.services.report_service import ReportService

logger = get_logger(__name__)


async def generate_all(report_date: Optional[date], subdomain: Optional[str] = None) -> int:
    """Returns the number of dispensaries whose report failed."""
    async with AsyncSessionLocal() as session:
        stmt = select(Tenant, Dispensary).join(Dispensary, Dispensary.tenant_id == Tenant.id)
        if subdomain:
            stmt = stmt.where(Tenant.subdomain == subdomain)
        rows = (await session.execute(stmt.order_by(Tenant.subdomain, Dispensary.name))).all()
        targets = [
            (
                TenantContext(
                    tenant_id=tenant.id,
                    subdomain=tenant.subdomain,
                    jurisdiction=tenant.jurisdiction,
                    timezone=tenant.timezone,
                ),
                dispensary.id,
            )
            for tenant, dispensary in rows
        ]

    failures = 0
    for ctx, dispensary_id in targets:
        day = report_date or ctx.local_date() - timedelta(days=1)
        async with AsyncSessionLocal() as session:
            try:
                await ReportService.generate_daily_report(session, ctx, dispensary_id, day)
                await session.commit()
            except ComplianceError:
                await session.rollback()
                failures += 1
                logger.error(
                    "Report failed",
                    subdomain=ctx.subdomain,
                    dispensary_id=dispensary_id,
                    report_date=day.isoformat(),
                )

    logger.info("Daily reports finished", dispensaries=len(targets), failures=failures)
    return failures


async def main(argv: list[str]) -> int:
    report_date = date.fromisoformat(argv[0]) if argv else None
    subdomain = argv[1] if len(argv) > 1 else None
    try:
        failures = await generate_all(report_date, subdomain)
    finally:
        await engine.dispose()
    return 1 if failures else 0


if __name__ == "__main__":
    configure_logging()
    sys.exit(asyncio.run(main(sys.argv[1:])))
