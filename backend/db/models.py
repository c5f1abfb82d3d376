"""
Floorline EDI Database Models

Tables:
  Trading (read/updated by the EDI engine):
  1. vendors               - Trading partners (+ edi_config JSON)
  2. orders                - Customer orders (tracking, carrier, shipped_at)
  3. purchase_orders       - POs sent to vendors (+ EDI ack columns)
  4. purchase_order_items  - PO lines (+ edi_line_status, dye_lot, qty_shipped)

  EDI (owned by the EDI engine):
  5. edi_transactions      - Audit row per inbound/outbound transaction set
  6. edi_invoices          - Parsed 810 headers
  7. edi_invoice_items     - Parsed 810 lines
  8. edi_control_numbers   - ISA/GS/ST counters per vendor
  9. po_activity_log       - Append-only PO history
  10. edi_poll_runs        - One row per inbound poll cycle
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from db.session import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


def utcnow() -> datetime:
    """Naive UTC timestamp for DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


PO_STATUSES = ("draft", "approved", "sent", "acknowledged", "fulfilled", "cancelled")
PO_ITEM_STATUSES = ("pending", "shipped", "received", "cancelled")
EDI_STATUSES = ("received", "processed", "failed", "generated", "sent")
CONTROL_NUMBER_TYPES = ("interchange", "group", "transaction")


# ─── 1. Vendors ────────────────────────────────────────────────────────────


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    code = Column(String(50), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="active")
    edi_enabled = Column(Boolean, nullable=False, default=False)
    edi_config = Column(JSON)  # see integrations.partner_config.PartnerEDIConfig
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("ix_vendors_edi_enabled", "edi_enabled", "status"),)


# ─── 2. Orders ─────────────────────────────────────────────────────────────


class Order(Base):
    __tablename__ = "orders"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    order_number = Column(String(50), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="pending")
    tracking_number = Column(Text)  # comma-joined, one per 856 package
    shipping_carrier = Column(String(100))
    shipped_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


# ─── 3. Purchase Orders ────────────────────────────────────────────────────


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    vendor_id = Column(GUID(), ForeignKey("vendors.id"), nullable=False)
    order_id = Column(GUID(), ForeignKey("orders.id", ondelete="SET NULL"))
    po_number = Column(String(50), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="draft")
    subtotal = Column(Numeric(12, 2), default=0)

    # EDI tracking
    edi_interchange_id = Column(BigInteger)  # ISA13 of the last 850 sent
    edi_ack_status = Column(String(30))  # accepted | partial | rejected
    edi_ack_received_at = Column(DateTime)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_po_vendor_status", "vendor_id", "status"),
        CheckConstraint(
            "status IN ('draft', 'approved', 'sent', 'acknowledged', 'fulfilled', 'cancelled')",
            name="ck_po_status",
        ),
    )

    items = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.line_number",
    )


# ─── 4. Purchase Order Items ───────────────────────────────────────────────


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    purchase_order_id = Column(GUID(), ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False)
    line_number = Column(Integer, nullable=False)  # insertion ordinal, 1-based
    product_name = Column(String(255))
    vendor_sku = Column(String(100))
    description = Column(Text)
    category_name = Column(String(100))
    qty = Column(Numeric(12, 4), nullable=False)
    sell_by = Column(String(10), nullable=False, default="unit")  # sqft | unit
    cost = Column(Numeric(12, 4), nullable=False, default=0)
    retail_price = Column(Numeric(12, 4))
    subtotal = Column(Numeric(12, 2))
    status = Column(String(20), nullable=False, default="pending")

    # EDI line data
    edi_line_status = Column(String(30))
    dye_lot = Column(String(100))
    qty_shipped = Column(Numeric(12, 4), nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "line_number", name="uq_po_item_line"),
        CheckConstraint("qty > 0", name="ck_po_item_qty_positive"),
        CheckConstraint("status IN ('pending', 'shipped', 'received', 'cancelled')", name="ck_po_item_status"),
    )

    purchase_order = relationship("PurchaseOrder", back_populates="items")


# ─── 5. EDI Transactions ───────────────────────────────────────────────────


class EDITransaction(Base):
    """
    Audit row for every transaction set sent or received.

    Inbound:  received → processed | failed
    Outbound: generated → sent | failed (failed rows are replayed on retry)
    """

    __tablename__ = "edi_transactions"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    vendor_id = Column(GUID(), ForeignKey("vendors.id"), nullable=False)
    document_type = Column(String(10), nullable=False)  # 832, 850, 855, 856, 810
    direction = Column(String(10), nullable=False)  # inbound | outbound
    filename = Column(String(255))
    interchange_control_number = Column(BigInteger)
    group_control_number = Column(BigInteger)
    transaction_control_number = Column(BigInteger)
    purchase_order_id = Column(GUID(), ForeignKey("purchase_orders.id", ondelete="SET NULL"))
    order_id = Column(GUID(), ForeignKey("orders.id", ondelete="SET NULL"))
    status = Column(String(20), nullable=False, default="received")
    raw_content = Column(Text)
    parsed_summary = Column(JSON)
    error_message = Column(Text)
    processed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_edi_txn_vendor_filename", "vendor_id", "direction", "filename"),
        Index("ix_edi_txn_po", "purchase_order_id"),
        Index("ix_edi_txn_type", "document_type"),
        CheckConstraint("direction IN ('inbound', 'outbound')", name="ck_edi_txn_direction"),
        CheckConstraint(
            "status IN ('received', 'processed', 'failed', 'generated', 'sent')",
            name="ck_edi_txn_status",
        ),
    )


# ─── 6-7. EDI Invoices ─────────────────────────────────────────────────────


class EDIInvoice(Base):
    __tablename__ = "edi_invoices"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    vendor_id = Column(GUID(), ForeignKey("vendors.id"), nullable=False)
    edi_transaction_id = Column(GUID(), ForeignKey("edi_transactions.id"))
    invoice_number = Column(String(100), nullable=False)
    invoice_date = Column(Date)
    po_number = Column(String(50))
    purchase_order_id = Column(GUID(), ForeignKey("purchase_orders.id"))
    total_amount = Column(Numeric(12, 2))
    status = Column(String(20), nullable=False, default="pending")  # pending | matched
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_edi_invoices_vendor", "vendor_id"),
        Index("ix_edi_invoices_po", "purchase_order_id"),
    )

    items = relationship("EDIInvoiceItem", back_populates="invoice", cascade="all, delete-orphan")


class EDIInvoiceItem(Base):
    __tablename__ = "edi_invoice_items"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    edi_invoice_id = Column(GUID(), ForeignKey("edi_invoices.id", ondelete="CASCADE"), nullable=False)
    line_number = Column(Integer)
    vendor_sku = Column(String(100))
    description = Column(Text)
    qty = Column(Numeric(12, 4))
    unit_of_measure = Column(String(10))
    unit_price = Column(Numeric(12, 4))
    subtotal = Column(Numeric(12, 2))

    invoice = relationship("EDIInvoice", back_populates="items")


# ─── 8. Control Numbers ────────────────────────────────────────────────────


class EDIControlNumber(Base):
    """Last issued ISA13 / GS06 / ST02 per vendor. Only touched by db.control_numbers."""

    __tablename__ = "edi_control_numbers"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    vendor_id = Column(GUID(), ForeignKey("vendors.id"), nullable=False)
    number_type = Column(String(20), nullable=False)
    last_number = Column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("vendor_id", "number_type", name="uq_edi_control_number"),
        CheckConstraint("number_type IN ('interchange', 'group', 'transaction')", name="ck_edi_control_number_type"),
        CheckConstraint("last_number >= 0 AND last_number <= 999999999", name="ck_edi_control_number_range"),
    )


# ─── 9. PO Activity Log ────────────────────────────────────────────────────


class POActivityLog(Base):
    __tablename__ = "po_activity_log"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    purchase_order_id = Column(GUID(), ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False)
    action = Column(String(50), nullable=False)  # edi_sent, edi_acknowledged, ...
    details = Column(JSON)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("ix_po_activity_po", "purchase_order_id", "created_at"),)


# ─── 10. Poll Runs ─────────────────────────────────────────────────────────


class EDIPollRun(Base):
    __tablename__ = "edi_poll_runs"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    vendor_id = Column(GUID(), ForeignKey("vendors.id"), nullable=False)
    status = Column(String(20), nullable=False)
    files_found = Column(Integer, nullable=False, default=0)
    files_processed = Column(Integer, nullable=False, default=0)
    files_skipped = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    summary = Column(JSON)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime)

    __table_args__ = (
        Index("ix_edi_poll_runs_vendor", "vendor_id", "started_at"),
        CheckConstraint("status IN ('success', 'partial', 'failed', 'no_data')", name="ck_edi_poll_run_status"),
    )
