"""
EDI schema - trading tables, transaction audit, control numbers, poll runs

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid_pk():
    return sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def upgrade() -> None:
    # 1. Vendors
    op.create_table(
        "vendors",
        _uuid_pk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("edi_enabled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("edi_config", sa.JSON),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_vendors_edi_enabled", "vendors", ["edi_enabled", "status"])

    # 2. Orders
    op.create_table(
        "orders",
        _uuid_pk(),
        sa.Column("order_number", sa.String(50), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("tracking_number", sa.Text),
        sa.Column("shipping_carrier", sa.String(100)),
        sa.Column("shipped_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # 3. Purchase orders
    op.create_table(
        "purchase_orders",
        _uuid_pk(),
        sa.Column("vendor_id", UUID(as_uuid=True), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("order_id", UUID(as_uuid=True), sa.ForeignKey("orders.id", ondelete="SET NULL")),
        sa.Column("po_number", sa.String(50), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("subtotal", sa.Numeric(12, 2), server_default="0"),
        sa.Column("edi_interchange_id", sa.BigInteger),
        sa.Column("edi_ack_status", sa.String(30)),
        sa.Column("edi_ack_received_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('draft', 'approved', 'sent', 'acknowledged', 'fulfilled', 'cancelled')",
            name="ck_po_status",
        ),
    )
    op.create_index("ix_po_vendor_status", "purchase_orders", ["vendor_id", "status"])

    # 4. Purchase order items
    op.create_table(
        "purchase_order_items",
        _uuid_pk(),
        sa.Column(
            "purchase_order_id",
            UUID(as_uuid=True),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("line_number", sa.Integer, nullable=False),
        sa.Column("product_name", sa.String(255)),
        sa.Column("vendor_sku", sa.String(100)),
        sa.Column("description", sa.Text),
        sa.Column("category_name", sa.String(100)),
        sa.Column("qty", sa.Numeric(12, 4), nullable=False),
        sa.Column("sell_by", sa.String(10), nullable=False, server_default="unit"),
        sa.Column("cost", sa.Numeric(12, 4), nullable=False, server_default="0"),
        sa.Column("retail_price", sa.Numeric(12, 4)),
        sa.Column("subtotal", sa.Numeric(12, 2)),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("edi_line_status", sa.String(30)),
        sa.Column("dye_lot", sa.String(100)),
        sa.Column("qty_shipped", sa.Numeric(12, 4), nullable=False, server_default="0"),
        sa.UniqueConstraint("purchase_order_id", "line_number", name="uq_po_item_line"),
        sa.CheckConstraint("qty > 0", name="ck_po_item_qty_positive"),
        sa.CheckConstraint("status IN ('pending', 'shipped', 'received', 'cancelled')", name="ck_po_item_status"),
    )

    # 5. EDI transactions
    op.create_table(
        "edi_transactions",
        _uuid_pk(),
        sa.Column("vendor_id", UUID(as_uuid=True), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("document_type", sa.String(10), nullable=False),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column("filename", sa.String(255)),
        sa.Column("interchange_control_number", sa.BigInteger),
        sa.Column("group_control_number", sa.BigInteger),
        sa.Column("transaction_control_number", sa.BigInteger),
        sa.Column(
            "purchase_order_id", UUID(as_uuid=True), sa.ForeignKey("purchase_orders.id", ondelete="SET NULL")
        ),
        sa.Column("order_id", UUID(as_uuid=True), sa.ForeignKey("orders.id", ondelete="SET NULL")),
        sa.Column("status", sa.String(20), nullable=False, server_default="received"),
        sa.Column("raw_content", sa.Text),
        sa.Column("parsed_summary", sa.JSON),
        sa.Column("error_message", sa.Text),
        sa.Column("processed_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("direction IN ('inbound', 'outbound')", name="ck_edi_txn_direction"),
        sa.CheckConstraint(
            "status IN ('received', 'processed', 'failed', 'generated', 'sent')",
            name="ck_edi_txn_status",
        ),
    )
    op.create_index("ix_edi_txn_vendor_filename", "edi_transactions", ["vendor_id", "direction", "filename"])
    op.create_index("ix_edi_txn_po", "edi_transactions", ["purchase_order_id"])
    op.create_index("ix_edi_txn_type", "edi_transactions", ["document_type"])

    # 6-7. EDI invoices
    op.create_table(
        "edi_invoices",
        _uuid_pk(),
        sa.Column("vendor_id", UUID(as_uuid=True), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("edi_transaction_id", UUID(as_uuid=True), sa.ForeignKey("edi_transactions.id")),
        sa.Column("invoice_number", sa.String(100), nullable=False),
        sa.Column("invoice_date", sa.Date),
        sa.Column("po_number", sa.String(50)),
        sa.Column("purchase_order_id", UUID(as_uuid=True), sa.ForeignKey("purchase_orders.id")),
        sa.Column("total_amount", sa.Numeric(12, 2)),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_edi_invoices_vendor", "edi_invoices", ["vendor_id"])
    op.create_index("ix_edi_invoices_po", "edi_invoices", ["purchase_order_id"])

    op.create_table(
        "edi_invoice_items",
        _uuid_pk(),
        sa.Column(
            "edi_invoice_id", UUID(as_uuid=True), sa.ForeignKey("edi_invoices.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("line_number", sa.Integer),
        sa.Column("vendor_sku", sa.String(100)),
        sa.Column("description", sa.Text),
        sa.Column("qty", sa.Numeric(12, 4)),
        sa.Column("unit_of_measure", sa.String(10)),
        sa.Column("unit_price", sa.Numeric(12, 4)),
        sa.Column("subtotal", sa.Numeric(12, 2)),
    )

    # 8. Control numbers
    op.create_table(
        "edi_control_numbers",
        _uuid_pk(),
        sa.Column("vendor_id", UUID(as_uuid=True), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("number_type", sa.String(20), nullable=False),
        sa.Column("last_number", sa.BigInteger, nullable=False, server_default="0"),
        sa.UniqueConstraint("vendor_id", "number_type", name="uq_edi_control_number"),
        sa.CheckConstraint(
            "number_type IN ('interchange', 'group', 'transaction')", name="ck_edi_control_number_type"
        ),
        sa.CheckConstraint("last_number >= 0 AND last_number <= 999999999", name="ck_edi_control_number_range"),
    )

    # 9. PO activity log
    op.create_table(
        "po_activity_log",
        _uuid_pk(),
        sa.Column(
            "purchase_order_id",
            UUID(as_uuid=True),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("details", sa.JSON),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_po_activity_po", "po_activity_log", ["purchase_order_id", "created_at"])

    # 10. Poll runs
    op.create_table(
        "edi_poll_runs",
        _uuid_pk(),
        sa.Column("vendor_id", UUID(as_uuid=True), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("files_found", sa.Integer, nullable=False, server_default="0"),
        sa.Column("files_processed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("files_skipped", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("summary", sa.JSON),
        sa.Column("started_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime),
        sa.CheckConstraint("status IN ('success', 'partial', 'failed', 'no_data')", name="ck_edi_poll_run_status"),
    )
    op.create_index("ix_edi_poll_runs_vendor", "edi_poll_runs", ["vendor_id", "started_at"])


def downgrade() -> None:
    op.drop_table("edi_poll_runs")
    op.drop_table("po_activity_log")
    op.drop_table("edi_control_numbers")
    op.drop_table("edi_invoice_items")
    op.drop_table("edi_invoices")
    op.drop_table("edi_transactions")
    op.drop_table("purchase_order_items")
    op.drop_table("purchase_orders")
    op.drop_table("orders")
    op.drop_table("vendors")
