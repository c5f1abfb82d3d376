"""
PO lookup and EDI line matching.

Vendors echo our lines back in 855/856 documents, but not always the
same way: some send the vendor SKU, some only the PO1 line number.
Lines are matched by vendor SKU first, then by 1-based position in
line_number order. Position matches are reported separately so they can
be audited.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import EDITransaction, POActivityLog, PurchaseOrder, PurchaseOrderItem

MATCH_VENDOR_SKU = "vendor_sku"
MATCH_POSITION = "position"
MATCH_UNMATCHED = "unmatched"


@dataclass
class LineMatch:
    item: PurchaseOrderItem | None
    method: str


async def find_purchase_order(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    po_number: str | None,
) -> PurchaseOrder | None:
    if not po_number:
        return None
    result = await db.execute(
        select(PurchaseOrder).where(
            PurchaseOrder.po_number == po_number,
            PurchaseOrder.vendor_id == vendor_id,
        )
    )
    return result.scalar_one_or_none()


async def load_po_items(db: AsyncSession, po_id: uuid.UUID) -> list[PurchaseOrderItem]:
    result = await db.execute(
        select(PurchaseOrderItem)
        .where(PurchaseOrderItem.purchase_order_id == po_id)
        .order_by(PurchaseOrderItem.line_number)
    )
    return list(result.scalars().all())


def match_po_line(
    items: list[PurchaseOrderItem],
    vendor_sku: str | None,
    position: int | None = None,
) -> LineMatch:
    """Vendor SKU first, then 1-based position when one is given."""
    if vendor_sku:
        for item in items:
            if item.vendor_sku == vendor_sku:
                return LineMatch(item, MATCH_VENDOR_SKU)
    if position is not None and 0 < position <= len(items):
        return LineMatch(items[position - 1], MATCH_POSITION)
    return LineMatch(None, MATCH_UNMATCHED)


def link_transaction(txn: EDITransaction, po: PurchaseOrder | None) -> None:
    txn.purchase_order_id = po.id if po is not None else None
    txn.order_id = po.order_id if po is not None else None


def log_activity(db: AsyncSession, po_id: uuid.UUID, action: str, details: dict) -> POActivityLog:
    entry = POActivityLog(purchase_order_id=po_id, action=action, details=details)
    db.add(entry)
    return entry
