"""
856 Advance Ship Notice: tracking, carrier, dye lots and fulfilment.

Tracking numbers are appended to the order's comma-joined field, never
overwritten. Lines are matched by vendor SKU only; ASNs do not carry a
reliable PO line position.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Order, utcnow
from integrations.edi_documents import decode_856
from integrations.errors import MissingReference
from integrations.x12 import TransactionSet
from purchasing.context import DocumentContext
from purchasing.matching import (
    MATCH_VENDOR_SKU,
    find_purchase_order,
    link_transaction,
    load_po_items,
    log_activity,
    match_po_line,
)

logger = structlog.get_logger()

SHIPPABLE_ORDER_STATUSES = ("pending", "confirmed", "processing")
FULFILLED_ITEM_STATUSES = ("shipped", "received")


def merge_tracking_numbers(existing: str | None, incoming: list[str]) -> tuple[str | None, list[str]]:
    """Return (joined value, newly added numbers)."""
    current = [n.strip() for n in (existing or "").split(",") if n.strip()]
    added = [n for n in incoming if n not in current]
    merged = current + added
    return (", ".join(merged) if merged else existing), added


async def apply_ship_notice(db: AsyncSession, ctx: DocumentContext, txn_set: TransactionSet) -> dict[str, Any]:
    asn = decode_856(txn_set)
    if not asn.po_number:
        raise MissingReference("856 has no PO number (PRF/REF*PO)")

    po = await find_purchase_order(db, ctx.vendor_id, asn.po_number)
    if po is None:
        raise MissingReference(f"856 references unknown PO {asn.po_number}")

    link_transaction(ctx.transaction, po)

    added_tracking: list[str] = []
    if po.order_id is not None and asn.tracking_numbers:
        order = await db.get(Order, po.order_id)
        if order is not None:
            merged, added_tracking = merge_tracking_numbers(order.tracking_number, asn.tracking_numbers)
            if added_tracking:
                order.tracking_number = merged
                if order.shipped_at is None:
                    order.shipped_at = utcnow()
                if not order.shipping_carrier and asn.carrier:
                    order.shipping_carrier = asn.carrier
                if order.status in SHIPPABLE_ORDER_STATUSES:
                    order.status = "shipped"

    items = await load_po_items(db, po.id)
    lines: list[dict[str, Any]] = []
    for ship_line in asn.lines:
        match = match_po_line(items, ship_line.vendor_sku)
        lines.append(
            {
                "vendor_sku": ship_line.vendor_sku,
                "qty_shipped": str(ship_line.quantity_shipped),
                "dye_lot": ship_line.dye_lot,
                "match": match.method,
            }
        )
        if match.method != MATCH_VENDOR_SKU:
            continue
        item = match.item
        if ship_line.quantity_shipped:
            item.qty_shipped = (item.qty_shipped or 0) + ship_line.quantity_shipped
        if ship_line.dye_lot:
            item.dye_lot = ship_line.dye_lot
        item.status = "shipped"

    fulfilled = bool(items) and all(item.status in FULFILLED_ITEM_STATUSES for item in items)
    if fulfilled:
        po.status = "fulfilled"

    log_activity(
        db,
        po.id,
        "edi_shipped",
        {
            "shipment_id": asn.shipment_id,
            "tracking_numbers": list(asn.tracking_numbers),
            "carrier": {"scac": asn.carrier_scac, "name": asn.carrier_name},
            "bill_of_lading": asn.bill_of_lading,
            "items_shipped": len(asn.lines),
            "lines": lines,
        },
    )
    await db.flush()

    logger.info(
        "edi.856.applied",
        po_number=asn.po_number,
        tracking=asn.tracking_numbers,
        fulfilled=fulfilled,
    )
    return {
        **asn.summary(),
        "purchase_order_id": str(po.id),
        "tracking_added": added_tracking,
        "lines_matched": sum(1 for line in lines if line["match"] == MATCH_VENDOR_SKU),
        "lines_unmatched": sum(1 for line in lines if line["match"] != MATCH_VENDOR_SKU),
        "po_fulfilled": fulfilled,
    }
