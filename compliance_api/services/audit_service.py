"""
services/audit_service.py
-------------------------
Append-only, hash-chained compliance log.

Every regulator-relevant event (sales, returns, inventory movements, recalls,
ID checks, purchase-limit checks) is written through AuditService.record.

Chain layout, per dispensary:
    entry.sequence      = previous.sequence + 1   (1 for the first entry)
    entry.previous_hash = previous.hash           ("" for the first entry)
    entry.hash          = sha256(canonical JSON of every stored field)

Appends for one dispensary are serialised (see db/locks.py) so the chain
cannot fork; the unique (dispensary_id, sequence) constraint rejects a fork
that slips through from another process. verify_chain recomputes the chain
and reports the first entry that does not match.

Write failures raise AuditWriteFailure and are never retried here: the
caller's transaction is rolled back with it, so a sale is never completed
without its audit record.
"""

import csv
import hashlib
import io
import json
import math
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_api.core.context import as_utc, utcnow
from compliance_api.core.exceptions import AuditWriteFailure
from compliance_api.core.logging import get_logger
from compliance_api.db.locks import serialized
from compliance_api.models.compliance import ComplianceEventType, ComplianceLogEntry
from compliance_api.models.order import Order
from compliance_api.schemas.compliance import (
    ChainVerification,
    ReturnDetails,
    SaleDetails,
    SaleItemDetails,
    normalise_details,
)

logger = get_logger(__name__)

EXPORT_HEADER = ["Timestamp", "User", "Action", "Resource", "ResourceID", "Severity", "Details"]

SEVERITY = {
    ComplianceEventType.PRODUCT_RECALL: "high",
    ComplianceEventType.INVENTORY_DESTROYED: "high",
    ComplianceEventType.RETURN: "medium",
    ComplianceEventType.INVENTORY_ADJUSTMENT: "medium",
}

RESOURCE = {
    ComplianceEventType.SALE: "order",
    ComplianceEventType.RETURN: "order",
    ComplianceEventType.INVENTORY_ADJUSTMENT: "inventory",
    ComplianceEventType.INVENTORY_RECEIVED: "inventory",
    ComplianceEventType.INVENTORY_DESTROYED: "inventory",
    ComplianceEventType.PRODUCT_RECALL: "product",
    ComplianceEventType.ID_VERIFICATION: "customer",
    ComplianceEventType.PURCHASE_LIMIT_CHECK: "customer",
}


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_entry_hash(entry: ComplianceLogEntry) -> str:
    """SHA-256 over every persisted field of the entry, including its link."""
    material = {
        "dispensary_id": entry.dispensary_id,
        "event_type": entry.event_type,
        "details": entry.details,
        "actor_id": entry.actor_id,
        "order_id": entry.order_id,
        "created_at": as_utc(entry.created_at).isoformat(timespec="microseconds"),
        "sequence": entry.sequence,
        "previous_hash": entry.previous_hash,
    }
    return hashlib.sha256(canonical_json(material).encode("utf-8")).hexdigest()


def _chain_lock(dispensary_id: str) -> str:
    return f"compliance-log:{dispensary_id}"


class AuditService:

    @staticmethod
    async def record(
        db: AsyncSession,
        dispensary_id: str,
        event_type: ComplianceEventType | str,
        details: Any,
        actor_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> ComplianceLogEntry:
        """
        Append one compliance event to the dispensary's chain.

        details are validated against the event type's fixed shape; a
        malformed payload raises pydantic.ValidationError before anything
        is written.

        Raises:
            AuditWriteFailure: the entry could not be persisted.
        """
        event_type = ComplianceEventType(event_type)
        payload = normalise_details(event_type, details)

        try:
            async with serialized(db, _chain_lock(dispensary_id)):
                tail = await AuditService._chain_tail(db, dispensary_id)
                entry = ComplianceLogEntry(
                    dispensary_id=dispensary_id,
                    event_type=event_type.value,
                    details=payload,
                    actor_id=actor_id,
                    order_id=order_id,
                    created_at=utcnow(),
                    sequence=(tail.sequence + 1) if tail else 1,
                    previous_hash=tail.hash if tail else "",
                )
                entry.hash = compute_entry_hash(entry)
                db.add(entry)
                await db.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "Compliance event write failed",
                dispensary_id=dispensary_id,
                event_type=event_type.value,
                order_id=order_id,
                error=str(exc),
            )
            raise AuditWriteFailure(
                dispensary_id=dispensary_id, event_type=event_type.value
            ) from exc

        logger.info(
            "Compliance event recorded",
            entry_id=entry.id,
            dispensary_id=dispensary_id,
            event_type=event_type.value,
            sequence=entry.sequence,
            actor_id=actor_id,
            order_id=order_id,
        )
        return entry

    @staticmethod
    async def _chain_tail(db: AsyncSession, dispensary_id: str) -> ComplianceLogEntry | None:
        result = await db.execute(
            select(ComplianceLogEntry)
            .where(ComplianceLogEntry.dispensary_id == dispensary_id)
            .order_by(ComplianceLogEntry.sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ── Typed helpers for the order flow ─────────────────────────────────────

    @staticmethod
    async def log_sale(
        db: AsyncSession, order: Order, actor_id: Optional[str]
    ) -> ComplianceLogEntry:
        details = SaleDetails(
            order_id=order.id,
            order_number=order.order_number,
            items=[
                SaleItemDetails(
                    product_name=item.product_name,
                    variant_name=item.variant_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_total=item.line_total,
                    batch_number=item.batch_number,
                    license_number=item.license_number,
                )
                for item in order.items
            ],
            subtotal=order.subtotal,
            tax_amount=order.tax_amount,
            excise_tax=order.excise_tax,
            total=order.total,
        )
        return await AuditService.record(
            db, order.dispensary_id, ComplianceEventType.SALE, details,
            actor_id=actor_id, order_id=order.id,
        )

    @staticmethod
    async def log_return(
        db: AsyncSession, order: Order, actor_id: Optional[str], reason: Optional[str]
    ) -> ComplianceLogEntry:
        details = ReturnDetails(
            order_id=order.id,
            order_number=order.order_number,
            refunded_amount=order.total,
            reason=reason,
        )
        return await AuditService.record(
            db, order.dispensary_id, ComplianceEventType.RETURN, details,
            actor_id=actor_id, order_id=order.id,
        )

    # ── Queries ──────────────────────────────────────────────────────────────

    @staticmethod
    async def find_logs(
        db: AsyncSession,
        dispensary_id: str,
        start: datetime,
        end: datetime,
        event_type: Optional[ComplianceEventType] = None,
    ) -> list[ComplianceLogEntry]:
        """Entries with start <= created_at < end, newest first."""
        stmt = select(ComplianceLogEntry).where(
            ComplianceLogEntry.dispensary_id == dispensary_id,
            ComplianceLogEntry.created_at >= start,
            ComplianceLogEntry.created_at < end,
        )
        if event_type is not None:
            stmt = stmt.where(ComplianceLogEntry.event_type == ComplianceEventType(event_type).value)
        result = await db.execute(
            stmt.order_by(
                ComplianceLogEntry.created_at.desc(), ComplianceLogEntry.sequence.desc()
            )
        )
        return list(result.scalars().all())

    @staticmethod
    async def query_logs(
        db: AsyncSession,
        dispensary_id: str,
        start: datetime,
        end: datetime,
        event_type: Optional[ComplianceEventType] = None,
        actor_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[int, int, list[ComplianceLogEntry]]:
        """
        Paginated variant of find_logs with an optional actor filter.

        Returns:
            (total_count, total_pages, page_of_entries)
        """
        filters = [
            ComplianceLogEntry.dispensary_id == dispensary_id,
            ComplianceLogEntry.created_at >= start,
            ComplianceLogEntry.created_at < end,
        ]
        if event_type is not None:
            filters.append(ComplianceLogEntry.event_type == ComplianceEventType(event_type).value)
        if actor_id is not None:
            filters.append(ComplianceLogEntry.actor_id == actor_id)

        count_result = await db.execute(
            select(func.count()).select_from(ComplianceLogEntry).where(*filters)
        )
        total = count_result.scalar_one()

        result = await db.execute(
            select(ComplianceLogEntry)
            .where(*filters)
            .order_by(
                ComplianceLogEntry.created_at.desc(), ComplianceLogEntry.sequence.desc()
            )
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return total, math.ceil(total / limit), list(result.scalars().all())

    @staticmethod
    async def export_for_regulator(
        db: AsyncSession, dispensary_id: str, start: datetime, end: datetime
    ) -> str:
        """
        Flat CSV of every entry in [start, end), oldest first.
        The Details column holds the entry's JSON with quotes doubled.
        """
        result = await db.execute(
            select(ComplianceLogEntry)
            .where(
                ComplianceLogEntry.dispensary_id == dispensary_id,
                ComplianceLogEntry.created_at >= start,
                ComplianceLogEntry.created_at < end,
            )
            .order_by(ComplianceLogEntry.sequence)
        )
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(EXPORT_HEADER)
        rows = 0
        for entry in result.scalars():
            event_type = ComplianceEventType(entry.event_type)
            writer.writerow([
                as_utc(entry.created_at).isoformat(),
                entry.actor_id or "",
                event_type.value,
                "order" if entry.order_id else RESOURCE[event_type],
                entry.order_id or "",
                SEVERITY.get(event_type, "low"),
                canonical_json(entry.details),
            ])
            rows += 1
        logger.info("Regulator export generated", dispensary_id=dispensary_id, rows=rows)
        return buffer.getvalue()

    @staticmethod
    async def verify_chain(db: AsyncSession, dispensary_id: str) -> ChainVerification:
        """
        Recompute the dispensary's chain from the first entry.

        Detects edited entries (hash mismatch), deleted or reordered entries
        (sequence gap or broken previous_hash link).
        """
        result = await db.execute(
            select(ComplianceLogEntry)
            .where(ComplianceLogEntry.dispensary_id == dispensary_id)
            .order_by(ComplianceLogEntry.sequence)
        )
        previous_hash = ""
        checked = 0
        for expected_sequence, entry in enumerate(result.scalars(), start=1):
            reason = None
            if entry.sequence != expected_sequence:
                reason = f"sequence gap: expected {expected_sequence}, found {entry.sequence}"
            elif entry.previous_hash != previous_hash:
                reason = "previous_hash does not match prior entry"
            elif compute_entry_hash(entry) != entry.hash:
                reason = "entry hash mismatch"
            if reason:
                logger.error(
                    "Compliance chain broken",
                    dispensary_id=dispensary_id,
                    entry_id=entry.id,
                    sequence=entry.sequence,
                    reason=reason,
                )
                return ChainVerification(
                    dispensary_id=dispensary_id,
                    valid=False,
                    entries_checked=checked,
                    first_invalid_id=entry.id,
                    first_invalid_sequence=entry.sequence,
                    reason=reason,
                )
            previous_hash = entry.hash
            checked += 1

        return ChainVerification(dispensary_id=dispensary_id, valid=True, entries_checked=checked)
