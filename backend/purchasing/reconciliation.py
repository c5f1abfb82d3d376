"""
EDI Reconciliation Engine: inbound poll cycle.

Runs once per partner on a schedule (every 30 minutes):

    list Outbox ─► skip known filenames ─► download ─► parse interchange
        └─► per transaction set: insert 'received' row, commit
                                 dispatch to DOCUMENT_HANDLERS
                                 'processed' + summary | rollback + 'failed'
        └─► archive to Outbox/Archive (failure is logged only)

File states:
    discovered → downloaded → decoded → dispatched → archived
    skipped_duplicate | failed (malformed, transport) | archive_failed

Polling is at-least-once: a file is only skipped once a row carrying its
filename exists, so a download failure is retried next cycle while a
malformed file is recorded failed and never retried.
"""

from __future__ import annotations

import uuid
from typing import Any, Awaitable, Callable

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import EDIPollRun, EDITransaction, Vendor, utcnow
from integrations.base import FileOutcome, PollStatus, PollSummary, RemoteFile, RemoteFileTransport, get_transport
from integrations.edi_documents import DocumentType, resolve_document_type
from integrations.errors import MalformedEnvelope, TransportError, UnknownDocumentType
from integrations.partner_config import PartnerEDIConfig
from integrations.x12 import Interchange, TransactionSet, decode_payload, parse_interchange
from purchasing.acknowledgments import apply_acknowledgment
from purchasing.catalog import apply_catalog
from purchasing.context import CatalogImporter, DocumentContext
from purchasing.invoices import apply_invoice
from purchasing.shipments import apply_ship_notice

logger = structlog.get_logger()

DocumentHandler = Callable[[AsyncSession, DocumentContext, TransactionSet], Awaitable[dict[str, Any]]]

DOCUMENT_HANDLERS: dict[DocumentType, DocumentHandler] = {
    DocumentType.CATALOG: apply_catalog,
    DocumentType.ACKNOWLEDGMENT: apply_acknowledgment,
    DocumentType.SHIP_NOTICE: apply_ship_notice,
    DocumentType.INVOICE: apply_invoice,
}

UNPARSEABLE_DOCUMENT_TYPE = "unknown"


async def processed_filenames(db: AsyncSession, vendor_id: uuid.UUID) -> set[str]:
    """Inbound filenames already recorded for this partner."""
    result = await db.execute(
        select(EDITransaction.filename)
        .where(
            EDITransaction.vendor_id == vendor_id,
            EDITransaction.direction == "inbound",
            EDITransaction.filename.is_not(None),
        )
        .distinct()
    )
    return set(result.scalars().all())


def _numeric(value: str) -> int | None:
    value = value.strip()
    return int(value) if value.isdigit() else None


# ── Per transaction set ───────────────────────────────────────────────────


async def _apply_transaction_set(
    db: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    config: PartnerEDIConfig,
    remote: RemoteFile,
    raw_text: str,
    interchange: Interchange,
    txn_set: TransactionSet,
    catalog_importer: CatalogImporter | None,
    log,
) -> dict[str, Any]:
    txn = EDITransaction(
        vendor_id=vendor_id,
        document_type=txn_set.document_type[:10],
        direction="inbound",
        filename=remote.name,
        interchange_control_number=interchange.envelope.interchange_control_number,
        transaction_control_number=_numeric(txn_set.control_number),
        status="received",
        raw_content=raw_text,
    )
    db.add(txn)
    await db.commit()
    txn_id = txn.id
    outcome = {
        "transaction_id": str(txn_id),
        "document_type": txn_set.document_type,
        "control_number": txn_set.control_number,
    }

    try:
        document_type = resolve_document_type(txn_set.document_type)
        handler = DOCUMENT_HANDLERS.get(document_type)
        if handler is None:
            raise UnknownDocumentType(txn_set.document_type)
    except UnknownDocumentType as exc:
        log.warning("edi.poll.unknown_document_type", filename=remote.name, document_type=exc.document_type)
        return {**outcome, "status": "received", "reason": str(exc)}

    ctx = DocumentContext(
        vendor_id=vendor_id,
        config=config,
        transaction=txn,
        catalog_importer=catalog_importer,
    )
    try:
        result = await handler(db, ctx, txn_set)
        txn.status = "processed"
        txn.parsed_summary = result
        txn.processed_at = utcnow()
        await db.commit()
    except Exception as exc:
        await db.rollback()
        await db.execute(
            update(EDITransaction)
            .where(EDITransaction.id == txn_id)
            .values(status="failed", error_message=str(exc), processed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        log.warning(
            "edi.poll.document_failed",
            filename=remote.name,
            document_type=txn_set.document_type,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return {**outcome, "status": "failed", "error": str(exc)}

    return {**outcome, "status": "processed"}


async def _record_malformed_file(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    remote: RemoteFile,
    raw_text: str,
    error: str,
) -> None:
    db.add(
        EDITransaction(
            vendor_id=vendor_id,
            document_type=UNPARSEABLE_DOCUMENT_TYPE,
            direction="inbound",
            filename=remote.name,
            status="failed",
            raw_content=raw_text,
            error_message=error,
            processed_at=utcnow(),
        )
    )
    await db.commit()


async def _record_poll_run(db: AsyncSession, vendor_id: uuid.UUID, summary: PollSummary) -> EDIPollRun:
    run = EDIPollRun(
        vendor_id=vendor_id,
        status=summary.status.value,
        files_found=summary.files_found,
        files_processed=summary.files_processed,
        files_skipped=summary.files_skipped,
        error_count=len(summary.errors),
        summary=summary.as_dict(),
        started_at=summary.started_at.replace(tzinfo=None),
        completed_at=summary.completed_at.replace(tzinfo=None) if summary.completed_at else None,
    )
    db.add(run)
    await db.commit()
    return run


# ── Poll cycle ────────────────────────────────────────────────────────────


async def run_poll_cycle(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    transport: RemoteFileTransport,
    config: PartnerEDIConfig,
    *,
    catalog_importer: CatalogImporter | None = None,
) -> PollSummary:
    """
    Process every new file in the partner's outbox, one at a time.

    ``transport`` must already be connected. Files and transaction sets
    are handled sequentially; a failure stops only its own file or set.
    """
    log = logger.bind(vendor_id=str(vendor_id), transport=transport.transport_type.value)
    summary = PollSummary()
    log.info("edi.poll.started", directory=config.outbox_dir)

    try:
        files = await transport.list(config.outbox_dir, config.file_extensions)
    except TransportError as exc:
        log.error("edi.poll.list_failed", error=str(exc))
        summary.status = PollStatus.FAILED
        summary.errors.append(f"list {config.outbox_dir}: {exc}")
        summary.complete()
        await _record_poll_run(db, vendor_id, summary)
        return summary

    summary.files_found = len(files)
    seen = await processed_filenames(db, vendor_id) if files else set()

    for remote in files:
        if remote.name in seen:
            summary.files_skipped += 1
            summary.files.append(FileOutcome(filename=remote.name, state="skipped_duplicate"))
            log.debug("edi.poll.file_skipped", filename=remote.name)
            continue

        outcome = FileOutcome(filename=remote.name, state="discovered")
        summary.files.append(outcome)

        try:
            raw = await transport.download(remote.path)
        except TransportError as exc:
            outcome.state = "failed"
            outcome.error = str(exc)
            summary.errors.append(f"{remote.name}: {exc}")
            log.warning("edi.poll.download_failed", filename=remote.name, error=str(exc))
            continue

        raw_text = decode_payload(raw)
        try:
            interchange = parse_interchange(raw_text)
            if not interchange.transaction_sets:
                raise MalformedEnvelope("Invalid X12: no complete ST/SE transaction set")
        except MalformedEnvelope as exc:
            await _record_malformed_file(db, vendor_id, remote, raw_text, str(exc))
            outcome.state = "failed"
            outcome.error = str(exc)
            summary.errors.append(f"{remote.name}: {exc}")
            log.warning("edi.poll.file_failed", filename=remote.name, error=str(exc))
            continue

        for txn_set in interchange.transaction_sets:
            summary.count_document(txn_set.document_type)
            result = await _apply_transaction_set(
                db,
                vendor_id=vendor_id,
                config=config,
                remote=remote,
                raw_text=raw_text,
                interchange=interchange,
                txn_set=txn_set,
                catalog_importer=catalog_importer,
                log=log,
            )
            outcome.documents.append(result)
            if result["status"] == "failed":
                summary.errors.append(f"{remote.name} {txn_set.document_type}: {result['error']}")

        summary.files_processed += 1
        try:
            outcome.archived_to = await transport.archive(remote.path, config.archive_dir)
            outcome.state = "archived"
        except TransportError as exc:
            outcome.state = "archive_failed"
            outcome.error = str(exc)
            log.error("edi.poll.archive_failed", filename=remote.name, error=str(exc))

    summary.complete()
    await _record_poll_run(db, vendor_id, summary)
    log.info(
        "edi.poll.completed",
        status=summary.status.value,
        files_found=summary.files_found,
        processed=summary.files_processed,
        skipped=summary.files_skipped,
        errors=len(summary.errors),
        by_type=summary.by_type,
    )
    return summary


async def poll_partner(
    db: AsyncSession,
    vendor: Vendor,
    *,
    transport: RemoteFileTransport | None = None,
    catalog_importer: CatalogImporter | None = None,
) -> PollSummary:
    """Resolve the partner's config and transport, connect, and run one cycle."""
    try:
        config = PartnerEDIConfig.from_vendor_config(vendor.edi_config)
        transport = transport or get_transport(vendor.id, config)
        await transport.connect()
    except ValueError as exc:
        # Unusable partner config; ValidationError and decrypt failures are ValueErrors
        logger.error("edi.poll.config_invalid", vendor_id=str(vendor.id), error=str(exc))
        summary = PollSummary(status=PollStatus.FAILED, errors=[f"config: {exc}"]).complete()
        await _record_poll_run(db, vendor.id, summary)
        return summary
    except TransportError as exc:
        logger.error("edi.poll.connect_failed", vendor_id=str(vendor.id), error=str(exc))
        summary = PollSummary(status=PollStatus.FAILED, errors=[f"connect: {exc}"]).complete()
        await _record_poll_run(db, vendor.id, summary)
        return summary

    try:
        return await run_poll_cycle(db, vendor.id, transport, config, catalog_importer=catalog_importer)
    finally:
        await transport.close()
