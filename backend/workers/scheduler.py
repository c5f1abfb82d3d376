"""Partner-aware scheduler helpers for Celery beat fan-out."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workers.celery_app import celery_app

logger = structlog.get_logger()

DEFAULT_ACTIVE_STATUSES = ("active",)


async def list_edi_partner_ids(db: AsyncSession, statuses: tuple[str, ...] = DEFAULT_ACTIVE_STATUSES) -> list[str]:
    from db.models import Vendor

    result = await db.execute(
        select(Vendor.id)
        .where(Vendor.edi_enabled.is_(True), Vendor.status.in_(statuses))
        .order_by(Vendor.created_at)
    )
    return [str(row.id) for row in result.all()]


@celery_app.task(
    name="workers.scheduler.dispatch_edi_partners",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
    acks_late=True,
)
def dispatch_edi_partners(
    self,
    task_name: str = "workers.edi.poll_partner",
    task_kwargs: dict | None = None,
    statuses: list[str] | None = None,
):
    """
    Dispatch a vendor-scoped task across all EDI-enabled vendors.
    """
    from core.config import get_settings

    run_id = self.request.id or "manual"
    payload = dict(task_kwargs or {})
    selected_statuses = tuple(statuses or DEFAULT_ACTIVE_STATUSES)

    if not task_name.startswith("workers."):
        return {"status": "failed", "reason": "invalid_task_name", "task_name": task_name}

    async def _dispatch():
        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession)
            async with async_session() as db:
                vendors = await list_edi_partner_ids(db, selected_statuses)

            for vendor_id in vendors:
                kwargs = dict(payload)
                kwargs["vendor_id"] = vendor_id
                celery_app.send_task(task_name, kwargs=kwargs)

            summary = {
                "status": "success",
                "task_name": task_name,
                "vendor_count": len(vendors),
                "dispatched_count": len(vendors),
                "statuses": list(selected_statuses),
                "triggered_at": datetime.now(timezone.utc).isoformat(),
                "run_id": run_id,
            }
            logger.info("scheduler.dispatch_complete", **summary)
            return summary
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_dispatch())
    except Exception as exc:  # noqa: BLE001
        logger.error("scheduler.dispatch_failed", task_name=task_name, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
