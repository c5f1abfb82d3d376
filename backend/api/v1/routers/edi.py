"""
EDI Router: trading-partner exchange visibility and manual triggers.

  GET  /api/v1/edi/transactions                      audit rows (filterable)
  GET  /api/v1/edi/poll-runs                         recent poll cycles
  GET  /api/v1/edi/purchase-orders/{po_id}/activity  PO activity log
  POST /api/v1/edi/vendors/{vendor_id}/poll          queue an inbound poll
  POST /api/v1/edi/purchase-orders/{po_id}/send      queue an 850 send

Polling and sending run in Celery workers; the POST endpoints only queue.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db
from db.models import EDIPollRun, EDITransaction, POActivityLog, PurchaseOrder, Vendor
from integrations.edi_documents import DocumentType

logger = structlog.get_logger()

router = APIRouter(
    prefix="/api/v1/edi",
    tags=["edi"],
    dependencies=[Depends(get_current_user)],
)


# ─── Schemas ────────────────────────────────────────────────────────────────


class EDITransactionResponse(BaseModel):
    id: UUID
    vendor_id: UUID
    document_type: str
    direction: str
    filename: str | None
    interchange_control_number: int | None
    group_control_number: int | None
    transaction_control_number: int | None
    purchase_order_id: UUID | None
    status: str
    parsed_summary: dict[str, Any] | None
    error_message: str | None
    processed_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class PollRunResponse(BaseModel):
    id: UUID
    vendor_id: UUID
    status: str
    files_found: int
    files_processed: int
    files_skipped: int
    error_count: int
    started_at: datetime
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class ActivityResponse(BaseModel):
    id: UUID
    action: str
    details: dict[str, Any] | None
    created_at: datetime

    model_config = {"from_attributes": True}


class QueuedResponse(BaseModel):
    status: str = "queued"
    task_id: str


# ─── Read endpoints ─────────────────────────────────────────────────────────


@router.get("/transactions", response_model=list[EDITransactionResponse])
async def list_transactions(
    vendor_id: UUID | None = None,
    status: str | None = None,
    document_type: str | None = None,
    direction: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """List EDI transaction rows, newest first."""
    if document_type and document_type not in {t.value for t in DocumentType}:
        raise HTTPException(status_code=400, detail=f"Unknown document type '{document_type}'")

    query = select(EDITransaction)
    if vendor_id:
        query = query.where(EDITransaction.vendor_id == vendor_id)
    if status:
        query = query.where(EDITransaction.status == status)
    if document_type:
        query = query.where(EDITransaction.document_type == document_type)
    if direction:
        query = query.where(EDITransaction.direction == direction)
    query = query.order_by(EDITransaction.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/poll-runs", response_model=list[PollRunResponse])
async def list_poll_runs(
    vendor_id: UUID | None = None,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Most recent poll cycles, optionally for one vendor."""
    query = select(EDIPollRun)
    if vendor_id:
        query = query.where(EDIPollRun.vendor_id == vendor_id)
    query = query.order_by(EDIPollRun.started_at.desc()).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/purchase-orders/{po_id}/activity", response_model=list[ActivityResponse])
async def get_po_activity(
    po_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Chronological activity log for a purchase order."""
    po = await db.get(PurchaseOrder, po_id)
    if not po:
        raise HTTPException(status_code=404, detail="Purchase order not found")
    result = await db.execute(
        select(POActivityLog).where(POActivityLog.purchase_order_id == po_id).order_by(POActivityLog.created_at)
    )
    return result.scalars().all()


# ─── Triggers ───────────────────────────────────────────────────────────────


@router.post("/vendors/{vendor_id}/poll", response_model=QueuedResponse, status_code=202)
async def queue_vendor_poll(
    vendor_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Queue an immediate inbound poll for one vendor."""
    vendor = await db.get(Vendor, vendor_id)
    if not vendor:
        raise HTTPException(status_code=404, detail="Vendor not found")
    if not vendor.edi_enabled:
        raise HTTPException(status_code=400, detail="Vendor is not EDI-enabled")

    from workers.edi import poll_partner

    task = poll_partner.delay(str(vendor_id))
    logger.info("edi.poll.queued", vendor_id=str(vendor_id), task_id=task.id)
    return QueuedResponse(task_id=task.id)


@router.post("/purchase-orders/{po_id}/send", response_model=QueuedResponse, status_code=202)
async def queue_purchase_order_send(
    po_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """
    Queue the 850 send for a purchase order.

    Accepts 'approved' POs and POs with unsent documents from a failed
    attempt (those are replayed with their original control numbers).
    """
    po = await db.get(PurchaseOrder, po_id)
    if not po:
        raise HTTPException(status_code=404, detail="Purchase order not found")
    vendor = await db.get(Vendor, po.vendor_id)
    if vendor is None or not vendor.edi_enabled:
        raise HTTPException(status_code=400, detail="Vendor is not EDI-enabled")

    if po.status != "approved":
        from purchasing.outbound import pending_outbound_rows

        if not await pending_outbound_rows(db, po.id):
            raise HTTPException(
                status_code=400,
                detail=f"Cannot send PO in '{po.status}' status. Must be 'approved'.",
            )

    from workers.edi import send_purchase_order

    task = send_purchase_order.delay(str(po_id))
    logger.info("edi.send.queued", po_number=po.po_number, task_id=task.id)
    return QueuedResponse(task_id=task.id)
