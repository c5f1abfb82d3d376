"""
855 PO Acknowledgment: applies a vendor's acknowledgment to a purchase order.

1. Resolve the PO (MissingReference when absent or unknown)
2. Roll the line statuses up into edi_ack_status
3. Move sent → acknowledged
4. Stamp edi_line_status on each matched item
5. Append edi_acknowledged (and edi_ack_position_match) activity
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import utcnow
from integrations.edi_documents import decode_855
from integrations.errors import MissingReference
from integrations.x12 import TransactionSet
from purchasing.context import DocumentContext
from purchasing.matching import (
    MATCH_POSITION,
    MATCH_UNMATCHED,
    find_purchase_order,
    link_transaction,
    load_po_items,
    log_activity,
    match_po_line,
)

logger = structlog.get_logger()


async def apply_acknowledgment(db: AsyncSession, ctx: DocumentContext, txn_set: TransactionSet) -> dict[str, Any]:
    ack = decode_855(txn_set)
    if not ack.po_number:
        raise MissingReference("855 has no PO number (BAK03)")

    po = await find_purchase_order(db, ctx.vendor_id, ack.po_number)
    if po is None:
        raise MissingReference(f"855 references unknown PO {ack.po_number}")

    link_transaction(ctx.transaction, po)

    overall_status = ack.status
    po.edi_ack_status = overall_status
    po.edi_ack_received_at = utcnow()
    if po.status == "sent":
        po.status = "acknowledged"

    items = await load_po_items(db, po.id)
    lines: list[dict[str, Any]] = []
    position_matches: list[dict[str, Any]] = []
    skipped: list[dict[str, Any]] = []

    for ack_line in ack.lines:
        match = match_po_line(items, ack_line.vendor_sku, ack_line.line_number)
        entry = {
            "line_number": ack_line.line_number,
            "vendor_sku": ack_line.vendor_sku or None,
            "status": ack_line.status,
            "match": match.method,
        }
        lines.append(entry)

        if match.item is None:
            skipped.append({**entry, "reason": "no matching PO line"})
            continue
        if not ack_line.status:
            skipped.append({**entry, "reason": "no ACK status"})
            continue

        match.item.edi_line_status = ack_line.status
        entry["item_line_number"] = match.item.line_number
        if match.method == MATCH_POSITION:
            position_matches.append(entry)

    log_activity(
        db,
        po.id,
        "edi_acknowledged",
        {
            "ack_type": ack.ack_type,
            "overall_status": overall_status,
            "line_count": len(ack.lines),
            "lines": lines,
            "skipped": skipped,
        },
    )
    if position_matches:
        log_activity(db, po.id, "edi_ack_position_match", {"lines": position_matches})

    await db.flush()

    summary = {
        **ack.summary(),
        "purchase_order_id": str(po.id),
        "lines_applied": len(ack.lines) - len(skipped),
        "lines_skipped": len(skipped),
        "position_matches": len(position_matches),
        "unmatched": sum(1 for line in lines if line["match"] == MATCH_UNMATCHED),
    }
    logger.info("edi.855.applied", po_number=ack.po_number, status=overall_status)
    return summary
