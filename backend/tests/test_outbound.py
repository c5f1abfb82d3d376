"""
Outbound 850 send path: generation, hard/soft split, upload and replay.
"""

from datetime import datetime

import pytest
from sqlalchemy import select

from db.models import EDIControlNumber, EDITransaction, POActivityLog, PurchaseOrder, PurchaseOrderItem, Vendor
from integrations.edi_documents import decode_850
from integrations.errors import TransportError
from integrations.filesystem_adapter import LocalDirectoryTransport
from integrations.partner_config import PartnerEDIConfig
from integrations.x12 import parse_interchange
from purchasing.outbound import send_purchase_order

NOW = datetime(2026, 2, 15, 9, 30)


class FailingUploadTransport(LocalDirectoryTransport):
    """Fails the Nth upload (1-based); every other upload goes to disk."""

    def __init__(self, vendor_id, config, fail_on=1):
        super().__init__(vendor_id, config)
        self.fail_on = fail_on
        self.calls = 0

    async def upload(self, path, data):
        self.calls += 1
        if self.calls == self.fail_on:
            raise TransportError("upload timed out after 5s")
        await super().upload(path, data)


def _config(seeded):
    return PartnerEDIConfig.from_vendor_config(seeded["vendor"].edi_config)


async def _outbound_rows(db, po_id):
    result = await db.execute(
        select(EDITransaction)
        .where(EDITransaction.purchase_order_id == po_id, EDITransaction.direction == "outbound")
        .order_by(EDITransaction.interchange_control_number)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
class TestSendPurchaseOrder:
    async def test_mixed_po_is_split_into_two_interchanges(self, test_db, seeded_db):
        po_id, root = seeded_db["po"].id, seeded_db["root"]

        result = await send_purchase_order(test_db, po_id, now=NOW)

        assert result["status"] == "sent"
        assert result["replayed"] is False
        assert [d["filename"] for d in result["documents"]] == [
            "850_PO-1001_H_000000001.edi",
            "850_PO-1001_S_000000002.edi",
        ]
        assert [d["line_count"] for d in result["documents"]] == [2, 1]
        assert sorted(p.name for p in (root / "Inbox").iterdir()) == [
            "850_PO-1001_H_000000001.edi",
            "850_PO-1001_S_000000002.edi",
        ]

        rows = await _outbound_rows(test_db, po_id)
        assert [(r.status, r.interchange_control_number, r.group_control_number) for r in rows] == [
            ("sent", 1, 1),
            ("sent", 2, 2),
        ]

        po = await test_db.get(PurchaseOrder, po_id)
        assert po.status == "sent"
        assert po.edi_interchange_id == 2

        activity = (
            await test_db.execute(select(POActivityLog).where(POActivityLog.purchase_order_id == po_id))
        ).scalar_one()
        assert activity.action == "edi_sent"
        assert activity.details["split"] is True

    async def test_uploaded_file_decodes_back_to_the_po(self, test_db, seeded_db):
        await send_purchase_order(test_db, seeded_db["po"].id, now=NOW)

        raw = (seeded_db["root"] / "Inbox" / "850_PO-1001_H_000000001.edi").read_bytes()
        interchange = parse_interchange(raw)
        po = decode_850(interchange.transaction_sets[0])

        assert po.po_number == "PO-1001"
        assert [(line.vendor_sku, str(line.quantity), line.unit_of_measure) for line in po.lines] == [
            ("LVP-100", "470", "SF"),
            ("LAM-200", "235", "SF"),
        ]
        assert interchange.envelope.receiver_id == "SHAWFLOORS"

    async def test_single_surface_po_has_no_suffix(self, test_db, seeded_db):
        carpet = seeded_db["items"][2]
        item = await test_db.get(PurchaseOrderItem, carpet.id)
        item.status = "cancelled"
        await test_db.commit()

        result = await send_purchase_order(test_db, seeded_db["po"].id, now=NOW)

        assert [d["filename"] for d in result["documents"]] == ["850_PO-1001_000000001.edi"]
        assert result["documents"][0]["surface"] is None

    async def test_failed_upload_is_replayed_with_same_control_numbers(self, test_db, seeded_db):
        po_id, root = seeded_db["po"].id, seeded_db["root"]
        flaky = FailingUploadTransport(seeded_db["vendor"].id, _config(seeded_db), fail_on=2)

        with pytest.raises(TransportError):
            await send_purchase_order(test_db, po_id, transport=flaky, now=NOW)

        rows = await _outbound_rows(test_db, po_id)
        assert [r.status for r in rows] == ["sent", "failed"]
        assert "timed out" in rows[1].error_message
        failed_content = rows[1].raw_content
        po = await test_db.get(PurchaseOrder, po_id)
        assert po.status == "approved"

        retry = await send_purchase_order(test_db, po_id, now=datetime(2026, 2, 15, 10, 0))

        assert retry["replayed"] is True
        assert [d["filename"] for d in retry["documents"]] == ["850_PO-1001_S_000000002.edi"]
        assert (root / "Inbox" / "850_PO-1001_S_000000002.edi").read_text() == failed_content

        rows = await _outbound_rows(test_db, po_id)
        assert [r.status for r in rows] == ["sent", "sent"]

        counter = (
            await test_db.execute(
                select(EDIControlNumber)
                .where(EDIControlNumber.number_type == "interchange")
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        assert counter.last_number == 2

        po = await test_db.get(PurchaseOrder, po_id)
        assert po.status == "sent"

    async def test_failed_build_of_second_document_persists_nothing(self, test_db, seeded_db, monkeypatch):
        from purchasing import outbound

        po_id, root = seeded_db["po"].id, seeded_db["root"]
        real_build = outbound.build_850
        calls = {"count": 0}

        def build_failing_second(*args, **kwargs):
            calls["count"] += 1
            if calls["count"] == 2:
                raise RuntimeError("ship-to rendering failed")
            return real_build(*args, **kwargs)

        monkeypatch.setattr(outbound, "build_850", build_failing_second)
        with pytest.raises(RuntimeError):
            await send_purchase_order(test_db, po_id, now=NOW)

        assert await _outbound_rows(test_db, po_id) == []
        assert list((root / "Inbox").iterdir()) == []

        monkeypatch.setattr(outbound, "build_850", real_build)
        retry = await send_purchase_order(test_db, po_id, now=NOW)

        assert retry["replayed"] is False
        assert [(d["surface"], d["line_count"]) for d in retry["documents"]] == [("H", 2), ("S", 1)]
        assert sorted(p.name for p in (root / "Inbox").iterdir()) == [
            "850_PO-1001_H_000000003.edi",
            "850_PO-1001_S_000000004.edi",
        ]
        rows = await _outbound_rows(test_db, po_id)
        assert [r.status for r in rows] == ["sent", "sent"]

    async def test_unsendable_status_is_rejected(self, test_db, seeded_db):
        po = await test_db.get(PurchaseOrder, seeded_db["po"].id)
        po.status = "draft"
        await test_db.commit()

        with pytest.raises(ValueError, match="Cannot send PO in status 'draft'"):
            await send_purchase_order(test_db, po.id, now=NOW)
        assert await _outbound_rows(test_db, po.id) == []

    async def test_vendor_without_edi_is_rejected(self, test_db, seeded_db):
        vendor = await test_db.get(Vendor, seeded_db["vendor"].id)
        vendor.edi_enabled = False
        await test_db.commit()

        with pytest.raises(ValueError, match="not EDI-enabled"):
            await send_purchase_order(test_db, seeded_db["po"].id, now=NOW)
