"""
832 Price/Sales Catalog: decode and hand off to the catalog importer.

The product catalog lives outside the EDI engine; an importer callable
can be injected to upsert products. Without one the decoded catalog is
only summarized on the transaction row.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from integrations.edi_catalog import decode_832
from integrations.x12 import TransactionSet
from purchasing.context import DocumentContext

logger = structlog.get_logger()


async def apply_catalog(db: AsyncSession, ctx: DocumentContext, txn_set: TransactionSet) -> dict[str, Any]:
    catalog = decode_832(
        txn_set,
        carpet_keywords=ctx.config.carpet_keywords,
        category_map=ctx.config.category_map,
    )
    summary = catalog.summary()

    if ctx.catalog_importer is not None:
        summary["import"] = await ctx.catalog_importer(db, ctx.vendor_id, catalog)
    else:
        summary["import"] = None

    logger.info(
        "edi.832.applied",
        vendor_id=str(ctx.vendor_id),
        items=summary["items"],
        declared_total=summary["declared_total"],
        imported=ctx.catalog_importer is not None,
    )
    return summary
