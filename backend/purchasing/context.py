"""Shared handler context for inbound document application."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import EDITransaction
from integrations.edi_catalog import Catalog
from integrations.partner_config import PartnerEDIConfig

# (db, vendor_id, catalog) -> importer summary
CatalogImporter = Callable[[AsyncSession, uuid.UUID, Catalog], Awaitable[dict[str, Any]]]


@dataclass
class DocumentContext:
    vendor_id: uuid.UUID
    config: PartnerEDIConfig
    transaction: EDITransaction
    catalog_importer: CatalogImporter | None = None
