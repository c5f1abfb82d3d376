"""
EDI 850: Purchase Order Encoder

Serializes an approved purchase order into one or more X12 850
interchanges. Some partners require hard-surface and soft-surface
(carpet) goods on separate orders, so a PO mixing both is split into
two independent interchanges, each with its own control numbers:

    850_{po}_H_{icn:09}.edi   ← hard surface lines
    850_{po}_S_{icn:09}.edi   ← soft surface lines
    850_{po}_{icn:09}.edi     ← single-surface PO

Control numbers are issued by db.control_numbers; this module only
formats them. Everything here is pure so the send path can persist the
built content before anything leaves the building.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from integrations.partner_config import PartnerEDIConfig

ISA_VERSION = "00401"
GS_VERSION = "004010"
REPETITION_SEPARATOR = "U"
MAX_DESCRIPTION_LENGTH = 80

SURFACE_HARD = "H"
SURFACE_SOFT = "S"


@dataclass(frozen=True)
class PurchaseOrderLine:
    """One PO line as the encoder sees it."""

    quantity: Decimal
    cost: Decimal
    vendor_sku: str = ""
    product_name: str = ""
    description: str = ""
    category_name: str = ""
    sell_by: str = "unit"


@dataclass(frozen=True)
class ControlNumberTriple:
    interchange: int
    group: int
    transaction: int


@dataclass(frozen=True)
class OutboundDocument:
    filename: str
    content: str
    controls: ControlNumberTriple
    surface: str | None
    line_count: int


# ── Formatting helpers ────────────────────────────────────────────────────


def _pad_right(value: str | None, width: int) -> str:
    text = value or ""
    return text[:width].ljust(width)


def _format_quantity(quantity: Decimal | int | float) -> str:
    number = Decimal(str(quantity))
    if number == number.to_integral_value():
        return str(int(number))
    return format(number.normalize(), "f")


def _format_price(cost: Decimal | int | float | None) -> str:
    number = Decimal(str(cost or 0))
    return str(number.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def outbound_filename(po_number: str, interchange_number: int, surface: str | None = None) -> str:
    if surface:
        return f"850_{po_number}_{surface}_{interchange_number:09d}.edi"
    return f"850_{po_number}_{interchange_number:09d}.edi"


# ── Hard / soft split ─────────────────────────────────────────────────────


def is_hard_surface(line: PurchaseOrderLine, keywords: Iterable[str]) -> bool:
    category = (line.category_name or "").lower()
    return any(keyword.lower() in category for keyword in keywords if keyword)


def split_by_surface(
    lines: list[PurchaseOrderLine],
    keywords: Iterable[str],
) -> tuple[list[PurchaseOrderLine], list[PurchaseOrderLine]]:
    """Partition lines into (hard, soft), preserving order."""
    keywords = list(keywords)
    hard = [line for line in lines if is_hard_surface(line, keywords)]
    soft = [line for line in lines if not is_hard_surface(line, keywords)]
    return hard, soft


def plan_850_documents(
    lines: list[PurchaseOrderLine],
    config: PartnerEDIConfig,
) -> list[tuple[str | None, list[PurchaseOrderLine]]]:
    """
    Decide how many interchanges a PO needs.

    Returns (surface suffix, lines) pairs: two pairs for a mixed PO,
    otherwise one pair with no suffix.
    """
    if not lines:
        raise ValueError("Purchase order has no lines")
    hard, soft = split_by_surface(lines, config.hard_surface_categories)
    if hard and soft:
        return [(SURFACE_HARD, hard), (SURFACE_SOFT, soft)]
    return [(None, list(lines))]


# ── Encoder ───────────────────────────────────────────────────────────────


def build_850(
    po_number: str,
    lines: list[PurchaseOrderLine],
    config: PartnerEDIConfig,
    controls: ControlNumberTriple,
    now: datetime,
) -> str:
    """Render one complete ISA..IEA interchange for ``lines``."""
    ele = config.element_separator
    term = config.segment_terminator
    date8 = now.strftime("%Y%m%d")
    time4 = now.strftime("%H%M")
    icn = f"{controls.interchange:09d}"
    gcn = f"{controls.group:09d}"
    tcn = f"{controls.transaction:04d}"

    segments: list[list[str]] = [
        [
            "ISA",
            "00",
            _pad_right("", 10),
            "00",
            _pad_right("", 10),
            _pad_right(config.sender_qualifier, 2),
            _pad_right(config.sender_id, 15),
            _pad_right(config.receiver_qualifier, 2),
            _pad_right(config.receiver_id, 15),
            now.strftime("%y%m%d"),
            time4,
            REPETITION_SEPARATOR,
            ISA_VERSION,
            icn,
            "0",
            config.usage_indicator,
            config.sub_element_separator,
        ],
        ["GS", "PO", config.group_sender_id, config.group_receiver_id, date8, time4, gcn, "X", GS_VERSION],
        ["ST", "850", tcn],
        ["BEG", "00", "NE", po_number, "", date8],
    ]
    transaction_start = 2

    if config.account_number:
        segments.append(["REF", "IA", config.account_number])

    if config.ship_to is not None:
        ship_to = config.ship_to
        segments.append(["N1", "ST", ship_to.name, "92", config.ship_to_code])
        segments.append(["N3", ship_to.address])
        segments.append(["N4", ship_to.city, ship_to.state, ship_to.postal_code, ship_to.country])

    for number, line in enumerate(lines, start=1):
        unit = "SF" if line.sell_by == "sqft" else "EA"
        po1 = ["PO1", f"{number:04d}", _format_quantity(line.quantity), unit, _format_price(line.cost), "PE"]
        if line.vendor_sku:
            po1.extend(["VP", line.vendor_sku])
        segments.append(po1)

        description = (line.product_name or line.description or "")[:MAX_DESCRIPTION_LENGTH]
        if description:
            segments.append(["PID", "F", "08", "", "", description])

    segments.append(["CTT", str(len(lines))])
    # ST through SE inclusive
    segment_count = len(segments) - transaction_start + 1
    segments.append(["SE", str(segment_count), tcn])
    segments.append(["GE", "1", gcn])
    segments.append(["IEA", "1", icn])

    return "".join(ele.join(parts) + term + "\n" for parts in segments)
