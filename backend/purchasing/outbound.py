"""
Outbound 850 send path.

1. Plan the PO into one or two interchanges (hard/soft split)
2. Per interchange: issue ISA/GS/ST numbers and build the document;
   then persist every document as a 'generated' edi_transactions row
   in one commit
3. Upload each persisted document to the partner Inbox
4. Mark rows 'sent', the PO 'sent', and log edi_sent

Once a plan is persisted, a retry never re-plans or re-issues numbers:
rows still 'generated' or 'failed' for the PO are replayed byte for byte.
"""

from __future__ import annotations

import posixpath
import uuid
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.control_numbers import issue_control_numbers
from db.models import EDITransaction, PurchaseOrder, Vendor, utcnow
from integrations.base import RemoteFileTransport, get_transport
from integrations.edi_documents import DocumentType
from integrations.edi_generator import (
    ControlNumberTriple,
    OutboundDocument,
    PurchaseOrderLine,
    build_850,
    outbound_filename,
    plan_850_documents,
)
from integrations.errors import TransportError
from integrations.partner_config import PartnerEDIConfig
from purchasing.matching import load_po_items, log_activity

logger = structlog.get_logger()

SENDABLE_PO_STATUSES = ("approved",)
REPLAYABLE_STATUSES = ("generated", "failed")


async def load_po_lines(db: AsyncSession, po: PurchaseOrder) -> list[PurchaseOrderLine]:
    items = await load_po_items(db, po.id)
    return [
        PurchaseOrderLine(
            quantity=item.qty,
            cost=item.cost,
            vendor_sku=item.vendor_sku or "",
            product_name=item.product_name or "",
            description=item.description or "",
            category_name=item.category_name or "",
            sell_by=item.sell_by or "unit",
        )
        for item in items
        if item.status != "cancelled"
    ]


async def pending_outbound_rows(db: AsyncSession, po_id: uuid.UUID) -> list[EDITransaction]:
    result = await db.execute(
        select(EDITransaction)
        .where(
            EDITransaction.purchase_order_id == po_id,
            EDITransaction.direction == "outbound",
            EDITransaction.document_type == DocumentType.PURCHASE_ORDER.value,
            EDITransaction.status.in_(REPLAYABLE_STATUSES),
        )
        .order_by(EDITransaction.created_at, EDITransaction.interchange_control_number)
    )
    return list(result.scalars().all())


async def generate_purchase_order_documents(
    db: AsyncSession,
    po: PurchaseOrder,
    config: PartnerEDIConfig,
    now: datetime | None = None,
) -> list[EDITransaction]:
    """Issue control numbers, build, and persist every 850 for ``po``."""
    now = now or datetime.now()
    lines = await load_po_lines(db, po)
    plan = plan_850_documents(lines, config)

    rows: list[EDITransaction] = []
    for surface, surface_lines in plan:
        controls = await issue_control_numbers(db, po.vendor_id)
        document = OutboundDocument(
            filename=outbound_filename(po.po_number, controls.interchange, surface),
            content=build_850(po.po_number, surface_lines, config, controls, now),
            controls=controls,
            surface=surface,
            line_count=len(surface_lines),
        )
        row = EDITransaction(
            vendor_id=po.vendor_id,
            document_type=DocumentType.PURCHASE_ORDER.value,
            direction="outbound",
            filename=document.filename,
            interchange_control_number=controls.interchange,
            group_control_number=controls.group,
            transaction_control_number=controls.transaction,
            purchase_order_id=po.id,
            order_id=po.order_id,
            status="generated",
            raw_content=document.content,
            parsed_summary={"surface": surface, "line_count": document.line_count},
        )
        rows.append(row)

    # One commit for the whole plan; a failed build persists nothing.
    db.add_all(rows)
    await db.commit()
    for row in rows:
        logger.info(
            "edi.send.generated",
            po_number=po.po_number,
            filename=row.filename,
            interchange=row.interchange_control_number,
        )
    return rows


def _document_from_row(row: EDITransaction) -> OutboundDocument:
    summary = row.parsed_summary or {}
    return OutboundDocument(
        filename=row.filename,
        content=row.raw_content,
        controls=ControlNumberTriple(
            interchange=row.interchange_control_number,
            group=row.group_control_number,
            transaction=row.transaction_control_number,
        ),
        surface=summary.get("surface"),
        line_count=summary.get("line_count", 0),
    )


async def _upload_rows(
    db: AsyncSession,
    transport: RemoteFileTransport,
    config: PartnerEDIConfig,
    rows: list[EDITransaction],
) -> None:
    for row in rows:
        path = posixpath.join(config.inbox_dir, row.filename)
        try:
            await transport.upload(path, row.raw_content.encode("utf-8"))
        except TransportError as exc:
            row.status = "failed"
            row.error_message = str(exc)
            await db.commit()
            logger.warning("edi.send.upload_failed", filename=row.filename, error=str(exc))
            raise
        row.status = "sent"
        row.error_message = None
        row.processed_at = utcnow()
        await db.commit()
        logger.info("edi.send.uploaded", filename=row.filename, path=path)


async def send_purchase_order(
    db: AsyncSession,
    po_id: uuid.UUID,
    *,
    transport: RemoteFileTransport | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Generate (or replay) and upload the 850s for a purchase order.

    Raises ValueError for a PO that cannot be sent and TransportError when
    an upload fails; in the latter case the documents stay persisted and
    the next call replays them with the same control numbers.
    """
    po = await db.get(PurchaseOrder, po_id)
    if po is None:
        raise ValueError(f"PO {po_id} not found")
    vendor = await db.get(Vendor, po.vendor_id)
    if vendor is None or not vendor.edi_enabled:
        raise ValueError(f"Vendor for PO {po.po_number} is not EDI-enabled")
    config = PartnerEDIConfig.from_vendor_config(vendor.edi_config)

    rows = await pending_outbound_rows(db, po.id)
    replayed = bool(rows)
    if not rows:
        if po.status not in SENDABLE_PO_STATUSES:
            raise ValueError(f"Cannot send PO in status '{po.status}'")
        rows = await generate_purchase_order_documents(db, po, config, now=now)
    else:
        logger.info("edi.send.replaying", po_number=po.po_number, documents=len(rows))

    if transport is None:
        async with get_transport(vendor.id, config) as connected:
            await _upload_rows(db, connected, config, rows)
    else:
        await _upload_rows(db, transport, config, rows)

    documents = [_document_from_row(row) for row in rows]
    if po.status in SENDABLE_PO_STATUSES:
        po.status = "sent"
    po.edi_interchange_id = documents[-1].controls.interchange
    details = {
        "files": [d.filename for d in documents],
        "interchange_control_numbers": [d.controls.interchange for d in documents],
        "split": len(documents) > 1,
        "replayed": replayed,
    }
    log_activity(db, po.id, "edi_sent", details)
    await db.commit()

    logger.info("edi.send.completed", po_number=po.po_number, documents=len(documents), replayed=replayed)
    return {
        "po_number": po.po_number,
        "status": po.status,
        "replayed": replayed,
        "documents": [
            {
                "filename": d.filename,
                "interchange_control_number": d.controls.interchange,
                "surface": d.surface,
                "line_count": d.line_count,
            }
            for d in documents
        ],
    }
