"""
API Tests: EDI visibility endpoints and manual triggers.
"""

import uuid
from datetime import datetime
from types import SimpleNamespace

import pytest
from httpx import AsyncClient

from db.models import EDIPollRun, EDITransaction, POActivityLog, PurchaseOrder, Vendor

MISSING = "00000000-0000-0000-0000-000000000099"


@pytest.fixture
def queued(monkeypatch):
    """Capture Celery .delay() calls made by the trigger endpoints."""
    calls: list[tuple[str, tuple]] = []

    def _fake(name):
        def _delay(*args):
            calls.append((name, args))
            return SimpleNamespace(id=f"task-{name}")

        return _delay

    monkeypatch.setattr("workers.edi.poll_partner.delay", _fake("poll"))
    monkeypatch.setattr("workers.edi.send_purchase_order.delay", _fake("send"))
    return calls


@pytest.fixture
async def edi_rows(test_db, seeded_db):
    vendor, po = seeded_db["vendor"], seeded_db["po"]
    test_db.add_all(
        [
            EDITransaction(
                vendor_id=vendor.id,
                document_type="855",
                direction="inbound",
                filename="855_1.edi",
                interchange_control_number=101,
                purchase_order_id=po.id,
                status="processed",
                parsed_summary={"po_number": "PO-1001", "ack_status": "accepted"},
                processed_at=datetime(2026, 2, 16, 8, 0),
                created_at=datetime(2026, 2, 16, 8, 0),
            ),
            EDITransaction(
                vendor_id=vendor.id,
                document_type="856",
                direction="inbound",
                filename="856_2.edi",
                interchange_control_number=102,
                status="failed",
                error_message="No purchase order 'PO-9999' for this vendor",
                created_at=datetime(2026, 2, 16, 9, 0),
            ),
            EDITransaction(
                vendor_id=vendor.id,
                document_type="850",
                direction="outbound",
                filename="850_PO-1001_H_000000001.edi",
                interchange_control_number=1,
                purchase_order_id=po.id,
                status="sent",
                created_at=datetime(2026, 2, 15, 9, 30),
            ),
            EDIPollRun(
                vendor_id=vendor.id,
                status="partial",
                files_found=2,
                files_processed=2,
                error_count=1,
                started_at=datetime(2026, 2, 16, 9, 0),
                completed_at=datetime(2026, 2, 16, 9, 1),
            ),
            POActivityLog(
                purchase_order_id=po.id,
                action="edi_acknowledged",
                details={"ack_status": "accepted"},
            ),
        ]
    )
    await test_db.commit()
    return seeded_db


@pytest.mark.asyncio
class TestHealthCheck:
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
class TestTransactionsAPI:
    async def test_list_transactions_empty(self, client: AsyncClient):
        response = await client.get("/api/v1/edi/transactions")
        assert response.status_code == 200
        assert response.json() == []

    async def test_list_transactions_newest_first(self, client: AsyncClient, edi_rows):
        response = await client.get("/api/v1/edi/transactions")
        assert response.status_code == 200
        assert [row["filename"] for row in response.json()] == [
            "856_2.edi",
            "855_1.edi",
            "850_PO-1001_H_000000001.edi",
        ]

    async def test_filters(self, client: AsyncClient, edi_rows):
        response = await client.get("/api/v1/edi/transactions", params={"status": "failed"})
        data = response.json()
        assert len(data) == 1
        assert data[0]["error_message"].startswith("No purchase order")

        response = await client.get(
            "/api/v1/edi/transactions",
            params={"direction": "outbound", "vendor_id": str(edi_rows["vendor"].id)},
        )
        assert [row["document_type"] for row in response.json()] == ["850"]

        response = await client.get("/api/v1/edi/transactions", params={"document_type": "855"})
        assert response.json()[0]["parsed_summary"]["ack_status"] == "accepted"

    async def test_pagination(self, client: AsyncClient, edi_rows):
        response = await client.get("/api/v1/edi/transactions", params={"skip": 1, "limit": 1})
        assert [row["filename"] for row in response.json()] == ["855_1.edi"]

    async def test_unknown_document_type_rejected(self, client: AsyncClient):
        response = await client.get("/api/v1/edi/transactions", params={"document_type": "997"})
        assert response.status_code == 400


@pytest.mark.asyncio
class TestPollRunsAndActivityAPI:
    async def test_list_poll_runs(self, client: AsyncClient, edi_rows):
        response = await client.get("/api/v1/edi/poll-runs")
        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert (data[0]["status"], data[0]["error_count"]) == ("partial", 1)

        response = await client.get("/api/v1/edi/poll-runs", params={"vendor_id": MISSING})
        assert response.json() == []

    async def test_po_activity(self, client: AsyncClient, edi_rows):
        response = await client.get(f"/api/v1/edi/purchase-orders/{edi_rows['po'].id}/activity")
        assert response.status_code == 200
        assert [row["action"] for row in response.json()] == ["edi_acknowledged"]

    async def test_po_activity_not_found(self, client: AsyncClient):
        response = await client.get(f"/api/v1/edi/purchase-orders/{MISSING}/activity")
        assert response.status_code == 404


@pytest.mark.asyncio
class TestTriggersAPI:
    async def test_queue_poll(self, client: AsyncClient, seeded_db, queued):
        vendor_id = str(seeded_db["vendor"].id)
        response = await client.post(f"/api/v1/edi/vendors/{vendor_id}/poll")
        assert response.status_code == 202
        assert response.json() == {"status": "queued", "task_id": "task-poll"}
        assert queued == [("poll", (vendor_id,))]

    async def test_queue_poll_unknown_vendor(self, client: AsyncClient, queued):
        response = await client.post(f"/api/v1/edi/vendors/{MISSING}/poll")
        assert response.status_code == 404
        assert queued == []

    async def test_queue_poll_requires_edi_vendor(self, client: AsyncClient, test_db, queued):
        vendor = Vendor(id=uuid.uuid4(), name="Local Tile Co", code="TILECO", edi_enabled=False)
        test_db.add(vendor)
        await test_db.commit()

        response = await client.post(f"/api/v1/edi/vendors/{vendor.id}/poll")
        assert response.status_code == 400
        assert queued == []

    async def test_queue_send(self, client: AsyncClient, seeded_db, queued):
        po_id = str(seeded_db["po"].id)
        response = await client.post(f"/api/v1/edi/purchase-orders/{po_id}/send")
        assert response.status_code == 202
        assert response.json()["task_id"] == "task-send"
        assert queued == [("send", (po_id,))]

    async def test_queue_send_rejects_draft(self, client: AsyncClient, test_db, seeded_db, queued):
        po = await test_db.get(PurchaseOrder, seeded_db["po"].id)
        po.status = "draft"
        await test_db.commit()

        response = await client.post(f"/api/v1/edi/purchase-orders/{po.id}/send")
        assert response.status_code == 400
        assert "draft" in response.json()["detail"]
        assert queued == []

    async def test_queue_send_allows_replay_of_failed_documents(
        self, client: AsyncClient, test_db, seeded_db, queued
    ):
        po = await test_db.get(PurchaseOrder, seeded_db["po"].id)
        po.status = "sent"
        test_db.add(
            EDITransaction(
                vendor_id=seeded_db["vendor"].id,
                document_type="850",
                direction="outbound",
                filename="850_PO-1001_S_000000002.edi",
                interchange_control_number=2,
                purchase_order_id=po.id,
                status="failed",
                raw_content="ISA*...",
            )
        )
        await test_db.commit()

        response = await client.post(f"/api/v1/edi/purchase-orders/{po.id}/send")
        assert response.status_code == 202
        assert queued == [("send", (str(po.id),))]

    async def test_queue_send_unknown_po(self, client: AsyncClient, queued):
        response = await client.post(f"/api/v1/edi/purchase-orders/{MISSING}/send")
        assert response.status_code == 404
