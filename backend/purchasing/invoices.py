"""
810 Invoice: records vendor invoices for AP reconciliation.

An invoice whose PO cannot be resolved is still stored (status
``pending``) so accounts payable can match it by hand.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import EDIInvoice, EDIInvoiceItem
from integrations.edi_documents import decode_810
from integrations.errors import MissingReference
from integrations.x12 import TransactionSet
from purchasing.context import DocumentContext
from purchasing.matching import find_purchase_order, link_transaction, log_activity

logger = structlog.get_logger()


async def apply_invoice(db: AsyncSession, ctx: DocumentContext, txn_set: TransactionSet) -> dict[str, Any]:
    invoice = decode_810(txn_set)
    if not invoice.invoice_number:
        raise MissingReference("810 has no invoice number (BIG02)")

    po = await find_purchase_order(db, ctx.vendor_id, invoice.po_number)
    link_transaction(ctx.transaction, po)

    record = EDIInvoice(
        vendor_id=ctx.vendor_id,
        edi_transaction_id=ctx.transaction.id,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        po_number=invoice.po_number,
        purchase_order_id=po.id if po is not None else None,
        total_amount=invoice.total_amount,
        status="matched" if po is not None else "pending",
    )
    db.add(record)
    await db.flush()

    for line in invoice.lines:
        db.add(
            EDIInvoiceItem(
                edi_invoice_id=record.id,
                line_number=line.line_number,
                vendor_sku=line.vendor_sku or None,
                description=line.description or None,
                qty=line.quantity,
                unit_of_measure=line.unit_of_measure,
                unit_price=line.unit_price,
                subtotal=line.subtotal,
            )
        )

    if po is not None:
        log_activity(
            db,
            po.id,
            "edi_invoiced",
            {
                "invoice_number": invoice.invoice_number,
                "total_amount": str(invoice.total_amount) if invoice.total_amount is not None else None,
                "line_count": len(invoice.lines),
            },
        )
    await db.flush()

    logger.info(
        "edi.810.applied",
        invoice_number=invoice.invoice_number,
        po_number=invoice.po_number,
        matched=po is not None,
    )
    return {
        **invoice.summary(),
        "invoice_id": str(record.id),
        "status": record.status,
    }
