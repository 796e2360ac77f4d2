"""
Tests for the hash-chained compliance log: recording, queries, regulator
export and chain verification.
"""

import csv
import io
import json
from datetime import timedelta

import pytest
from pydantic import ValidationError
from sqlalchemy import delete, select

from compliance_api.core.context import utcnow
from compliance_api.core.exceptions import AuditWriteFailure
from compliance_api.models.compliance import ComplianceEventType, ComplianceLogEntry
from compliance_api.services.audit_service import EXPORT_HEADER, AuditService, compute_entry_hash

RECALL = {"product_id": "prod-1", "batch_number": "B-100", "reason": "Mold detected"}
ID_CHECK = {"customer_id": "customer-1", "verification_type": "drivers_license", "verified": True}


def _window():
    now = utcnow()
    return now - timedelta(hours=1), now + timedelta(hours=1)


class TestRecord:
    """Tests for AuditService.record."""

    @pytest.mark.asyncio
    async def test_entries_form_a_chain(self, db_session, dispensary):
        """Test each entry links to the hash of the entry before it."""
        first = await AuditService.record(
            db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL, RECALL, actor_id="staff-1"
        )
        second = await AuditService.record(
            db_session, dispensary.id, ComplianceEventType.ID_VERIFICATION, ID_CHECK
        )

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.hash
        assert second.hash == compute_entry_hash(second)
        assert len(first.hash) == 64

    @pytest.mark.asyncio
    async def test_event_type_accepts_string(self, db_session, dispensary):
        """Test the event type may be given by its value."""
        entry = await AuditService.record(db_session, dispensary.id, "product_recall", RECALL)
        assert entry.event_type == "product_recall"

    @pytest.mark.asyncio
    async def test_invalid_details_rejected(self, db_session, dispensary):
        """Test details missing required fields are rejected before writing."""
        with pytest.raises(ValidationError):
            await AuditService.record(
                db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL, {"reason": "x"}
            )
        result = await db_session.execute(select(ComplianceLogEntry))
        assert result.scalars().all() == []

    @pytest.mark.asyncio
    async def test_write_failure_raises(self, db_session, dispensary, monkeypatch):
        """Test a storage error surfaces as AuditWriteFailure."""
        await AuditService.record(db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL, RECALL)
        await db_session.commit()

        async def no_tail(db, dispensary_id):
            return None

        # A lost tail makes the next entry reuse sequence 1.
        monkeypatch.setattr(AuditService, "_chain_tail", staticmethod(no_tail))
        with pytest.raises(AuditWriteFailure) as exc_info:
            await AuditService.record(
                db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL, RECALL
            )
        assert exc_info.value.status_code == 500
        assert exc_info.value.payload["event_type"] == "product_recall"
        await db_session.rollback()


class TestFindAndQuery:
    """Tests for find_logs and query_logs."""

    @pytest.mark.asyncio
    async def test_find_logs_range(self, db_session, dispensary):
        """Test an entry is found exactly once inside its range and not outside it."""
        entry = await AuditService.record(
            db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL, RECALL
        )
        start, end = _window()

        found = await AuditService.find_logs(db_session, dispensary.id, start, end)
        assert [e.id for e in found] == [entry.id]

        later = await AuditService.find_logs(
            db_session, dispensary.id, end, end + timedelta(days=1)
        )
        assert later == []

    @pytest.mark.asyncio
    async def test_find_logs_event_filter_newest_first(self, db_session, dispensary):
        """Test the event filter and descending order."""
        first = await AuditService.record(
            db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL, RECALL
        )
        await AuditService.record(
            db_session, dispensary.id, ComplianceEventType.ID_VERIFICATION, ID_CHECK
        )
        third = await AuditService.record(
            db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL, RECALL
        )
        start, end = _window()

        recalls = await AuditService.find_logs(
            db_session, dispensary.id, start, end, ComplianceEventType.PRODUCT_RECALL
        )
        assert [e.id for e in recalls] == [third.id, first.id]

    @pytest.mark.asyncio
    async def test_query_logs_pagination(self, db_session, dispensary):
        """Test totals and page slicing."""
        for _ in range(5):
            await AuditService.record(
                db_session, dispensary.id, ComplianceEventType.ID_VERIFICATION, ID_CHECK,
                actor_id="staff-1",
            )
        await AuditService.record(
            db_session, dispensary.id, ComplianceEventType.ID_VERIFICATION, ID_CHECK,
            actor_id="staff-2",
        )
        start, end = _window()

        total, pages, entries = await AuditService.query_logs(
            db_session, dispensary.id, start, end, page=2, limit=4
        )
        assert total == 6
        assert pages == 2
        assert len(entries) == 2

        total, pages, entries = await AuditService.query_logs(
            db_session, dispensary.id, start, end, actor_id="staff-2"
        )
        assert total == 1
        assert entries[0].actor_id == "staff-2"

    @pytest.mark.asyncio
    async def test_query_logs_empty(self, db_session, dispensary):
        """Test an empty range reports zero pages."""
        start, end = _window()
        total, pages, entries = await AuditService.query_logs(db_session, dispensary.id, start, end)
        assert (total, pages, entries) == (0, 0, [])


class TestExport:
    """Tests for the regulator CSV export."""

    @pytest.mark.asyncio
    async def test_export_rows(self, db_session, dispensary, make_order, now):
        """Test one sale produces one parseable row with its JSON details."""
        order = await make_order(now, "90.00", status="completed", tax="18.68")
        await AuditService.log_sale(db_session, order, actor_id="staff-1")
        await AuditService.record(
            db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL,
            {"product_id": "prod-1", "batch_number": "B-100", "reason": 'Label said "sativa"'},
        )
        start, end = _window()

        document = await AuditService.export_for_regulator(db_session, dispensary.id, start, end)
        rows = list(csv.reader(io.StringIO(document)))

        assert rows[0] == EXPORT_HEADER
        assert len(rows) == 3
        sale = rows[1]
        assert sale[1] == "staff-1"
        assert sale[2] == "sale"
        assert sale[3] == "order"
        assert sale[4] == order.id
        assert sale[5] == "low"
        details = json.loads(sale[6])
        assert details["order_number"] == order.order_number
        assert details["total"] == "90.00"

        recall = rows[2]
        assert recall[5] == "high"
        assert json.loads(recall[6])["reason"] == 'Label said "sativa"'
        assert '""reason""' in document

    @pytest.mark.asyncio
    async def test_export_empty_range(self, db_session, dispensary):
        """Test an empty range yields only the header."""
        start, end = _window()
        document = await AuditService.export_for_regulator(db_session, dispensary.id, start, end)
        assert document.strip() == ",".join(EXPORT_HEADER)


class TestVerifyChain:
    """Tests for hash-chain verification."""

    @pytest.mark.asyncio
    async def test_valid_chain(self, db_session, dispensary):
        """Test an untouched chain verifies."""
        for _ in range(3):
            await AuditService.record(
                db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL, RECALL
            )
        await db_session.commit()

        result = await AuditService.verify_chain(db_session, dispensary.id)
        assert result.valid is True
        assert result.entries_checked == 3

    @pytest.mark.asyncio
    async def test_edited_entry_detected(self, db_session, dispensary):
        """Test changing stored details breaks the entry's hash."""
        await AuditService.record(db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL, RECALL)
        second = await AuditService.record(
            db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL, RECALL
        )
        await db_session.commit()

        second.details = {**RECALL, "reason": "Nothing wrong"}
        await db_session.commit()

        result = await AuditService.verify_chain(db_session, dispensary.id)
        assert result.valid is False
        assert result.first_invalid_id == second.id
        assert result.first_invalid_sequence == 2
        assert result.entries_checked == 1
        assert result.reason == "entry hash mismatch"

    @pytest.mark.asyncio
    async def test_deleted_entry_detected(self, db_session, dispensary):
        """Test removing an entry leaves a detectable sequence gap."""
        entries = [
            await AuditService.record(
                db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL, RECALL
            )
            for _ in range(3)
        ]
        await db_session.commit()

        await db_session.execute(delete(ComplianceLogEntry).where(ComplianceLogEntry.id == entries[1].id))
        await db_session.commit()

        result = await AuditService.verify_chain(db_session, dispensary.id)
        assert result.valid is False
        assert result.first_invalid_sequence == 3
        assert result.reason.startswith("sequence gap")

    @pytest.mark.asyncio
    async def test_chains_are_per_dispensary(self, db_session, tenant, dispensary):
        """Test each dispensary has its own sequence."""
        from compliance_api.models import Dispensary

        uptown = Dispensary(tenant_id=tenant.id, name="Uptown", license_number="OCM-AUCP-0002")
        db_session.add(uptown)
        await db_session.flush()

        await AuditService.record(db_session, dispensary.id, ComplianceEventType.PRODUCT_RECALL, RECALL)
        entry = await AuditService.record(db_session, uptown.id, ComplianceEventType.PRODUCT_RECALL, RECALL)
        assert entry.sequence == 1
        assert entry.previous_hash == ""
