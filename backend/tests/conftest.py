"""
Test Configuration: Fixtures for async DB, test client, and EDI data.

Each test gets its own in-memory SQLite database. The EDI engine commits
and rolls back on its own, so tests cannot share an outer transaction.
"""

import uuid
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_current_user, get_db
from api.main import app
from db.session import Base

TEST_DATABASE_URL = "sqlite+aiosqlite://"

ISA_TEMPLATE = (
    "ISA*00*          *00*          *ZZ*{sender:<15}*ZZ*{receiver:<15}"
    "*260215*1200*U*00401*{icn:09d}*0*P*>~"
)


def build_interchange(
    body: list[str],
    *,
    icn: int = 1,
    group_code: str = "PR",
    sender: str = "SHAWFLOORS",
    receiver: str = "ROMAFLOOR",
) -> str:
    """Wrap already-delimited transaction set segments in ISA/GS..GE/IEA."""
    header = ISA_TEMPLATE.format(sender=sender, receiver=receiver, icn=icn)
    lines = [header, f"GS*{group_code}*{sender}*{receiver}*20260215*1200*{icn}*X*004010~"]
    lines.extend(segment if segment.endswith("~") else f"{segment}~" for segment in body)
    lines.append(f"GE*1*{icn}~")
    lines.append(f"IEA*1*{icn:09d}~")
    return "\n".join(lines) + "\n"


@pytest.fixture
def make_interchange():
    return build_interchange


@pytest.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_user():
    """Mock authenticated user."""
    return {"sub": "test-user-id", "email": "buyer@floorline.local"}


@pytest.fixture
async def client(test_db, mock_user):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def edi_root(tmp_path):
    """Local stand-in for the partner's SFTP drop."""
    root = tmp_path / "partner"
    (root / "Inbox").mkdir(parents=True)
    (root / "Outbox").mkdir(parents=True)
    return root


@pytest.fixture
async def seeded_db(test_db, edi_root):
    """
    One EDI-enabled vendor on the local transport, a customer order and an
    approved PO with two hard-surface lines and one carpet line.
    """
    from db.models import Order, PurchaseOrder, PurchaseOrderItem, Vendor

    vendor = Vendor(
        id=uuid.uuid4(),
        name="Shaw Industries",
        code="SHAW",
        status="active",
        edi_enabled=True,
        edi_config={
            "transport": "local",
            "local_root": str(edi_root),
            "receiver_id": "SHAWFLOORS",
            "account_number": "0133954",
            "timeout_seconds": 5,
        },
    )
    order = Order(order_number="SO-5001", status="confirmed")
    test_db.add_all([vendor, order])
    await test_db.flush()

    po = PurchaseOrder(
        vendor_id=vendor.id,
        order_id=order.id,
        po_number="PO-1001",
        status="approved",
        subtotal=Decimal("2371.50"),
    )
    test_db.add(po)
    await test_db.flush()

    items = [
        PurchaseOrderItem(
            purchase_order_id=po.id,
            line_number=1,
            product_name="Coastal Oak Plank",
            vendor_sku="LVP-100",
            category_name="Luxury Vinyl Plank",
            qty=Decimal("470"),
            sell_by="sqft",
            cost=Decimal("2.89"),
        ),
        PurchaseOrderItem(
            purchase_order_id=po.id,
            line_number=2,
            product_name="Repel Laminate Ash",
            vendor_sku="LAM-200",
            category_name="Laminate",
            qty=Decimal("235"),
            sell_by="sqft",
            cost=Decimal("1.95"),
        ),
        PurchaseOrderItem(
            purchase_order_id=po.id,
            line_number=3,
            product_name="Tuftex Cabana Life",
            vendor_sku="CPT-300",
            category_name="Carpet",
            qty=Decimal("12"),
            sell_by="unit",
            cost=Decimal("35.50"),
        ),
    ]
    test_db.add_all(items)
    await test_db.commit()

    return {
        "vendor": vendor,
        "order": order,
        "po": po,
        "items": items,
        "root": edi_root,
    }
