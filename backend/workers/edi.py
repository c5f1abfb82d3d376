"""
EDI Workers: inbound polling and outbound 850 delivery.

Workers:
  1. poll_partner: one reconciliation cycle for a vendor (fanned out by
     workers.scheduler.dispatch_edi_partners every 30 minutes)
  2. send_purchase_order: generate/replay and upload the 850s for a PO;
     retried on TransportError, which replays persisted documents
"""

import asyncio
import uuid

import structlog

from integrations.errors import TransportError
from workers.celery_app import celery_app

logger = structlog.get_logger()


def _session_factory():
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    from core.config import get_settings

    engine = create_async_engine(get_settings().database_url)
    return engine, async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@celery_app.task(
    name="workers.edi.poll_partner",
    bind=True,
    max_retries=1,
    default_retry_delay=300,
    acks_late=True,
)
def poll_partner(self, vendor_id: str):
    """
    Run one inbound poll cycle for a trading partner.

    Connect and list failures are recorded as a failed poll run; the next
    scheduled cycle is the retry.
    """
    from db.models import Vendor
    from purchasing.reconciliation import poll_partner as run_poll

    run_id = self.request.id or "manual"
    logger.info("edi.poll_task.started", vendor_id=vendor_id, run_id=run_id)

    async def _poll():
        engine, async_session = _session_factory()
        try:
            async with async_session() as db:
                vendor = await db.get(Vendor, uuid.UUID(vendor_id))
                if vendor is None or not vendor.edi_enabled:
                    return {"status": "skipped", "reason": "vendor_not_edi_enabled", "vendor_id": vendor_id}
                summary = await run_poll(db, vendor)
                return {"vendor_id": vendor_id, "run_id": run_id, **summary.as_dict()}
        finally:
            await engine.dispose()

    result = asyncio.run(_poll())
    logger.info(
        "edi.poll_task.completed",
        vendor_id=vendor_id,
        status=result.get("status"),
        errors=len(result.get("errors", [])),
    )
    return result


@celery_app.task(
    name="workers.edi.send_purchase_order",
    bind=True,
    max_retries=5,
    default_retry_delay=120,
    acks_late=True,
)
def send_purchase_order(self, purchase_order_id: str):
    """Generate (or replay) and upload the 850 documents for a purchase order."""
    from purchasing.outbound import send_purchase_order as send_po

    async def _send():
        engine, async_session = _session_factory()
        try:
            async with async_session() as db:
                return await send_po(db, uuid.UUID(purchase_order_id))
        finally:
            await engine.dispose()

    try:
        result = asyncio.run(_send())
    except TransportError as exc:
        logger.warning(
            "edi.send_task.retrying",
            purchase_order_id=purchase_order_id,
            attempt=self.request.retries,
            error=str(exc),
        )
        raise self.retry(exc=exc)
    except ValueError as exc:
        logger.error("edi.send_task.rejected", purchase_order_id=purchase_order_id, error=str(exc))
        return {"status": "failed", "purchase_order_id": purchase_order_id, "error": str(exc)}

    logger.info("edi.send_task.completed", purchase_order_id=purchase_order_id, documents=len(result["documents"]))
    return {"status": "success", **result}
