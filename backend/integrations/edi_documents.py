"""
EDI 855 / 856 / 810 / 850 Decoders

Each decoder is a stateless fold over one transaction set's segments.
Segments are dispatched through a per-decoder table keyed by segment id;
ids not in the table are ignored.

Supported document types:
  - EDI 832  Price/Sales Catalog         (inbound,  see edi_catalog.py)
  - EDI 855  PO Acknowledgment           (inbound  → purchase order status)
  - EDI 856  Advance Ship Notice         (inbound  → order tracking, dye lots)
  - EDI 810  Invoice                     (inbound  → edi_invoices)
  - EDI 850  Purchase Order              (outbound, decoded for round-trips)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable

import structlog

from integrations.edi_catalog import decode_832
from integrations.errors import UnknownDocumentType
from integrations.x12 import Segment, TransactionSet

logger = structlog.get_logger()

CENTS = Decimal("0.01")


class DocumentType(str, enum.Enum):
    CATALOG = "832"
    PURCHASE_ORDER = "850"
    ACKNOWLEDGMENT = "855"
    SHIP_NOTICE = "856"
    INVOICE = "810"


# ── Status tables ─────────────────────────────────────────────────────────

# ACK01 line status → (description, normalized status)
ACK_LINE_STATUS = {
    "IA": ("Accepted", "accepted"),
    "IB": ("Backordered", "backordered"),
    "IR": ("Rejected", "rejected"),
    "IC": ("Changed", "changed"),
    "ID": ("Cancelled", "cancelled"),
    "IF": ("On Hold", "on_hold"),
    "IS": ("Substituted", "substituted"),
}

# BAK01 acknowledgment type
ACK_TYPES = {"AC": "accepted", "AD": "accepted_with_changes", "RD": "rejected"}


# ── Parsed document containers ────────────────────────────────────────────


@dataclass
class AckLine:
    line_number: int = 0
    vendor_sku: str = ""
    quantity: Decimal = Decimal("0")
    quantity_ordered: Decimal = Decimal("0")
    unit_of_measure: str = ""
    unit_price: Decimal = Decimal("0")
    status_code: str | None = None
    status_description: str = ""

    @property
    def status(self) -> str | None:
        if not self.status_code:
            return None
        return ACK_LINE_STATUS.get(self.status_code, (self.status_code, self.status_code.lower()))[1]


@dataclass
class Acknowledgment855:
    ack_type: str | None = None
    po_number: str | None = None
    po_date: date | None = None
    lines: list[AckLine] = field(default_factory=list)

    @property
    def status(self) -> str:
        return rollup_ack_status(self.ack_type, [line.status for line in self.lines])

    def summary(self) -> dict[str, Any]:
        return {
            "ack_type": self.ack_type,
            "po_number": self.po_number,
            "status": self.status,
            "lines": len(self.lines),
        }


@dataclass
class ShipLine:
    vendor_sku: str | None = None
    quantity_shipped: Decimal = Decimal("0")
    unit_of_measure: str = ""
    dye_lot: str | None = None


@dataclass
class ShipNotice856:
    shipment_id: str | None = None
    ship_date: date | None = None
    carrier_scac: str | None = None
    carrier_name: str | None = None
    bill_of_lading: str | None = None
    tracking_numbers: list[str] = field(default_factory=list)
    po_number: str | None = None
    lines: list[ShipLine] = field(default_factory=list)

    @property
    def carrier(self) -> str | None:
        return self.carrier_name or self.carrier_scac

    def add_tracking_number(self, value: str) -> None:
        if value and value not in self.tracking_numbers:
            self.tracking_numbers.append(value)

    def summary(self) -> dict[str, Any]:
        return {
            "shipment_id": self.shipment_id,
            "po_number": self.po_number,
            "tracking_numbers": list(self.tracking_numbers),
            "lines": len(self.lines),
        }


@dataclass
class InvoiceLine:
    line_number: int = 0
    vendor_sku: str = ""
    description: str = ""
    quantity: Decimal = Decimal("0")
    unit_of_measure: str = ""
    unit_price: Decimal = Decimal("0")
    subtotal: Decimal = Decimal("0.00")


@dataclass
class Invoice810:
    invoice_number: str | None = None
    invoice_date: date | None = None
    po_number: str | None = None
    total_amount: Decimal | None = None
    lines: list[InvoiceLine] = field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        return {
            "invoice_number": self.invoice_number,
            "po_number": self.po_number,
            "total_amount": str(self.total_amount) if self.total_amount is not None else None,
            "lines": len(self.lines),
        }


@dataclass
class ShipToParty:
    name: str = ""
    code: str = ""
    address_line: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""


@dataclass
class PurchaseOrderLineRecord:
    line_number: int = 0
    quantity: Decimal = Decimal("0")
    unit_of_measure: str = ""
    unit_price: Decimal = Decimal("0")
    vendor_sku: str = ""
    description: str = ""


@dataclass
class PurchaseOrder850:
    po_number: str | None = None
    po_date: date | None = None
    purpose_code: str = ""
    order_type: str = ""
    account_number: str | None = None
    ship_to: ShipToParty | None = None
    lines: list[PurchaseOrderLineRecord] = field(default_factory=list)
    declared_line_count: int | None = None

    def summary(self) -> dict[str, Any]:
        return {"po_number": self.po_number, "lines": len(self.lines)}


# ── Element helpers ───────────────────────────────────────────────────────


def _decimal(value: str, default: Decimal = Decimal("0")) -> Decimal:
    value = value.strip()
    if not value:
        return default
    try:
        return Decimal(value)
    except InvalidOperation:
        return default


def _int(value: str) -> int:
    try:
        return int(_decimal(value))
    except (ValueError, ArithmeticError):
        return 0


def parse_x12_date(value: str) -> date | None:
    """CCYYMMDD or YYMMDD → date. Returns None when unreadable."""
    value = value.strip()
    fmt = {8: "%Y%m%d", 6: "%y%m%d"}.get(len(value))
    if fmt is None:
        return None
    try:
        return datetime.strptime(value, fmt).date()
    except ValueError:
        return None


def find_qualified(seg: Segment, qualifier: str, start: int = 1) -> str:
    """Value following the first ``qualifier`` element at or after ``start``."""
    for idx in range(start, len(seg) - 1):
        if seg.element(idx).strip() == qualifier:
            return seg.element(idx + 1).strip()
    return ""


# ── Status rollup ─────────────────────────────────────────────────────────


def rollup_ack_status(ack_type: str | None, line_statuses: list[str | None]) -> str:
    """
    Overall acknowledgment status for a purchase order.

    RD rejects the whole order and AD is always partial. Otherwise the
    line statuses decide: a mix of rejected and accepted lines, or any
    backordered line, is partial; only-rejected lines reject the order.
    """
    if ack_type == "RD":
        return "rejected"
    if ack_type == "AD":
        return "partial"

    has_rejected = "rejected" in line_statuses
    has_accepted = "accepted" in line_statuses
    if has_rejected and has_accepted:
        return "partial"
    if has_rejected:
        return "rejected"
    if "backordered" in line_statuses:
        return "partial"
    return "accepted"


# ── 855 ───────────────────────────────────────────────────────────────────


def _855_bak(doc: Acknowledgment855, seg: Segment) -> None:
    # BAK*AC*AT*PO_NUMBER*CCYYMMDD
    doc.ack_type = seg.element(1).strip() or None
    doc.po_number = seg.element(3).strip() or None
    doc.po_date = parse_x12_date(seg.element(4))


def _855_po1(doc: Acknowledgment855, seg: Segment) -> None:
    # PO1*line*qty*unit*price*basis*VP*sku
    qty = _decimal(seg.element(2))
    doc.lines.append(
        AckLine(
            line_number=_int(seg.element(1)),
            quantity=qty,
            quantity_ordered=qty,
            unit_of_measure=seg.element(3).strip(),
            unit_price=_decimal(seg.element(4)),
            vendor_sku=find_qualified(seg, "VP", start=5),
        )
    )


def _855_ack(doc: Acknowledgment855, seg: Segment) -> None:
    # ACK*status*qty*unit*...
    if not doc.lines:
        return
    line = doc.lines[-1]
    code = seg.element(1).strip() or None
    line.status_code = code
    if code in ACK_LINE_STATUS:
        line.status_description = ACK_LINE_STATUS[code][0]
    else:
        line.status_description = code or "Unknown"
    override = _decimal(seg.element(2))
    if override:
        line.quantity = override


_855_HANDLERS: dict[str, Callable[[Acknowledgment855, Segment], None]] = {
    "BAK": _855_bak,
    "PO1": _855_po1,
    "ACK": _855_ack,
}


def decode_855(txn_set: TransactionSet) -> Acknowledgment855:
    doc = Acknowledgment855()
    for seg in txn_set.segments:
        handler = _855_HANDLERS.get(seg.id)
        if handler is not None:
            handler(doc, seg)
    return doc


# ── 856 ───────────────────────────────────────────────────────────────────


@dataclass
class _ShipNoticeState:
    doc: ShipNotice856
    hierarchy_level: str = ""
    pending_sku: str | None = None


def _856_bsn(state: _ShipNoticeState, seg: Segment) -> None:
    # BSN*purpose*shipment_id*CCYYMMDD*HHMM
    state.doc.shipment_id = seg.element(2).strip() or None
    state.doc.ship_date = parse_x12_date(seg.element(3))


def _856_hl(state: _ShipNoticeState, seg: Segment) -> None:
    # HL*id*parent*level (S shipment, O order, I item)
    state.hierarchy_level = seg.element(3).strip()
    state.pending_sku = None


def _856_td5(state: _ShipNoticeState, seg: Segment) -> None:
    if seg.element(3).strip():
        state.doc.carrier_scac = seg.element(3).strip()
    if seg.element(5).strip():
        state.doc.carrier_name = seg.element(5).strip()


def _856_ref(state: _ShipNoticeState, seg: Segment) -> None:
    qualifier = seg.element(1).strip()
    value = seg.element(2).strip()
    if qualifier in ("CN", "2I"):
        state.doc.add_tracking_number(value)
    elif qualifier == "BM":
        state.doc.bill_of_lading = value or None
    elif qualifier == "PO":
        state.doc.po_number = value or None
    elif qualifier in ("LS", "LT") and state.hierarchy_level == "I" and state.doc.lines:
        state.doc.lines[-1].dye_lot = value or None


def _856_prf(state: _ShipNoticeState, seg: Segment) -> None:
    if seg.element(1).strip():
        state.doc.po_number = seg.element(1).strip()


def _856_lin(state: _ShipNoticeState, seg: Segment) -> None:
    sku = find_qualified(seg, "VP")
    if sku:
        state.pending_sku = sku
    # LIN may trail the SN1 it describes
    if state.doc.lines and not state.doc.lines[-1].vendor_sku and state.pending_sku:
        state.doc.lines[-1].vendor_sku = state.pending_sku


def _856_sn1(state: _ShipNoticeState, seg: Segment) -> None:
    # SN1*assigned_id*qty*unit
    state.doc.lines.append(
        ShipLine(
            vendor_sku=state.pending_sku,
            quantity_shipped=_decimal(seg.element(2)),
            unit_of_measure=seg.element(3).strip(),
        )
    )
    state.pending_sku = None


_856_HANDLERS: dict[str, Callable[[_ShipNoticeState, Segment], None]] = {
    "BSN": _856_bsn,
    "HL": _856_hl,
    "TD5": _856_td5,
    "REF": _856_ref,
    "PRF": _856_prf,
    "LIN": _856_lin,
    "SN1": _856_sn1,
}


def decode_856(txn_set: TransactionSet) -> ShipNotice856:
    state = _ShipNoticeState(doc=ShipNotice856())
    for seg in txn_set.segments:
        handler = _856_HANDLERS.get(seg.id)
        if handler is not None:
            handler(state, seg)
    return state.doc


# ── 810 ───────────────────────────────────────────────────────────────────


def _810_big(doc: Invoice810, seg: Segment) -> None:
    # BIG*invoice_date*invoice_number*po_date*po_number
    doc.invoice_date = parse_x12_date(seg.element(1))
    doc.invoice_number = seg.element(2).strip() or None
    doc.po_number = seg.element(4).strip() or None


def _810_it1(doc: Invoice810, seg: Segment) -> None:
    qty = _decimal(seg.element(2))
    price = _decimal(seg.element(4))
    doc.lines.append(
        InvoiceLine(
            line_number=_int(seg.element(1)),
            quantity=qty,
            unit_of_measure=seg.element(3).strip(),
            unit_price=price,
            vendor_sku=find_qualified(seg, "VP", start=5),
            subtotal=(qty * price).quantize(CENTS, rounding=ROUND_HALF_UP),
        )
    )


def _810_pid(doc: Invoice810, seg: Segment) -> None:
    if doc.lines and seg.element(5).strip():
        doc.lines[-1].description = seg.element(5).strip()


def _810_tds(doc: Invoice810, seg: Segment) -> None:
    # TDS amount is implied two-decimal (cents)
    cents = _int(seg.element(1))
    doc.total_amount = (Decimal(cents) / 100).quantize(CENTS)


_810_HANDLERS: dict[str, Callable[[Invoice810, Segment], None]] = {
    "BIG": _810_big,
    "IT1": _810_it1,
    "PID": _810_pid,
    "TDS": _810_tds,
}


def decode_810(txn_set: TransactionSet) -> Invoice810:
    doc = Invoice810()
    for seg in txn_set.segments:
        handler = _810_HANDLERS.get(seg.id)
        if handler is not None:
            handler(doc, seg)
    return doc


# ── 850 ───────────────────────────────────────────────────────────────────


def _850_beg(doc: PurchaseOrder850, seg: Segment) -> None:
    # BEG*00*NE*PO_NUMBER**CCYYMMDD
    doc.purpose_code = seg.element(1).strip()
    doc.order_type = seg.element(2).strip()
    doc.po_number = seg.element(3).strip() or None
    doc.po_date = parse_x12_date(seg.element(5))


def _850_ref(doc: PurchaseOrder850, seg: Segment) -> None:
    if seg.element(1).strip() == "IA":
        doc.account_number = seg.element(2).strip() or None


def _850_n1(doc: PurchaseOrder850, seg: Segment) -> None:
    if seg.element(1).strip() == "ST":
        doc.ship_to = ShipToParty(name=seg.element(2).strip(), code=seg.element(4).strip())


def _850_n3(doc: PurchaseOrder850, seg: Segment) -> None:
    if doc.ship_to is not None:
        doc.ship_to.address_line = seg.element(1).strip()


def _850_n4(doc: PurchaseOrder850, seg: Segment) -> None:
    if doc.ship_to is not None:
        doc.ship_to.city = seg.element(1).strip()
        doc.ship_to.state = seg.element(2).strip()
        doc.ship_to.postal_code = seg.element(3).strip()
        doc.ship_to.country = seg.element(4).strip()


def _850_po1(doc: PurchaseOrder850, seg: Segment) -> None:
    doc.lines.append(
        PurchaseOrderLineRecord(
            line_number=_int(seg.element(1)),
            quantity=_decimal(seg.element(2)),
            unit_of_measure=seg.element(3).strip(),
            unit_price=_decimal(seg.element(4)),
            vendor_sku=find_qualified(seg, "VP", start=5),
        )
    )


def _850_pid(doc: PurchaseOrder850, seg: Segment) -> None:
    if doc.lines and seg.element(5).strip():
        doc.lines[-1].description = seg.element(5).strip()


def _850_ctt(doc: PurchaseOrder850, seg: Segment) -> None:
    doc.declared_line_count = _int(seg.element(1))


_850_HANDLERS: dict[str, Callable[[PurchaseOrder850, Segment], None]] = {
    "BEG": _850_beg,
    "REF": _850_ref,
    "N1": _850_n1,
    "N3": _850_n3,
    "N4": _850_n4,
    "PO1": _850_po1,
    "PID": _850_pid,
    "CTT": _850_ctt,
}


def decode_850(txn_set: TransactionSet) -> PurchaseOrder850:
    doc = PurchaseOrder850()
    for seg in txn_set.segments:
        handler = _850_HANDLERS.get(seg.id)
        if handler is not None:
            handler(doc, seg)
    return doc


# ── Dispatch ──────────────────────────────────────────────────────────────

DOCUMENT_DECODERS: dict[DocumentType, Callable[[TransactionSet], Any]] = {
    DocumentType.CATALOG: decode_832,
    DocumentType.PURCHASE_ORDER: decode_850,
    DocumentType.ACKNOWLEDGMENT: decode_855,
    DocumentType.SHIP_NOTICE: decode_856,
    DocumentType.INVOICE: decode_810,
}


def resolve_document_type(code: str) -> DocumentType:
    try:
        return DocumentType(code.strip())
    except ValueError:
        raise UnknownDocumentType(code) from None


def decode_transaction_set(txn_set: TransactionSet) -> Any:
    """Decode one transaction set with the decoder registered for its type."""
    document_type = resolve_document_type(txn_set.document_type)
    return DOCUMENT_DECODERS[document_type](txn_set)
