"""
Unit tests for the 855 / 856 / 810 decoders and document-type dispatch.
"""

from datetime import date
from decimal import Decimal

import pytest

from integrations.edi_documents import (
    DocumentType,
    decode_810,
    decode_855,
    decode_856,
    decode_transaction_set,
    parse_x12_date,
    rollup_ack_status,
)
from integrations.errors import UnknownDocumentType
from integrations.x12 import TransactionSet, parse_interchange


def _first_set(make_interchange, body):
    return parse_interchange(make_interchange(body)).transaction_sets[0]


# ─── 855 ────────────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "ack_type, line_statuses, expected",
    [
        ("AC", ["accepted", "rejected"], "partial"),
        ("AC", ["rejected", "rejected"], "rejected"),
        ("RD", ["accepted", "accepted"], "rejected"),
        ("AD", ["accepted"], "partial"),
        ("AC", ["accepted", "backordered"], "partial"),
        ("AC", ["accepted", None], "accepted"),
        (None, [], "accepted"),
    ],
)
def test_ack_status_rollup(ack_type, line_statuses, expected):
    assert rollup_ack_status(ack_type, line_statuses) == expected


def test_decode_855_lines_and_status(make_interchange):
    txn_set = _first_set(
        make_interchange,
        [
            "ST*855*0001",
            "BAK*AC*AT*PO-1001*20260214",
            "PO1*0001*470*SF*2.89*PE*VP*LVP-100",
            "ACK*IA*470*SF",
            "PO1*0002*235*SF*1.95*PE",
            "ACK*IR",
            "PO1*0003*12*EA*35.50*PE*VP*CPT-300",
            "ACK*ZZ*10*EA",
            "CTT*3",
            "SE*10*0001",
        ],
    )
    ack = decode_855(txn_set)

    assert ack.ack_type == "AC"
    assert ack.po_number == "PO-1001"
    assert ack.po_date == date(2026, 2, 14)
    assert [line.line_number for line in ack.lines] == [1, 2, 3]
    assert [line.status for line in ack.lines] == ["accepted", "rejected", "zz"]
    assert ack.lines[0].vendor_sku == "LVP-100"
    assert ack.lines[1].vendor_sku == ""
    assert ack.lines[2].status_description == "ZZ"
    assert ack.lines[2].quantity == Decimal("10")
    assert ack.lines[2].quantity_ordered == Decimal("12")
    assert ack.status == "partial"


# ─── 856 ────────────────────────────────────────────────────────────────────


def test_decode_856_tracking_dedup_and_dye_lots(make_interchange):
    txn_set = _first_set(
        make_interchange,
        [
            "ST*856*0001",
            "BSN*00*SHP-77*20260215*1200",
            "HL*1**S",
            "TD5**2*UPSN**UPS Ground",
            "REF*BM*BOL-555",
            "REF*CN*1Z999AA10123456784",
            "REF*CN*1Z999AA10123456784",
            "HL*2*1*O",
            "PRF*PO-1001",
            "HL*3*2*I",
            "LIN**VP*LVP-100",
            "SN1**470*SF",
            "REF*LS*DL-2231",
            "HL*4*2*I",
            "SN1**12*EA",
            "LIN**VP*CPT-300",
            "REF*2I*1Z999AA10123456799",
            "SE*18*0001",
        ],
    )
    asn = decode_856(txn_set)

    assert asn.shipment_id == "SHP-77"
    assert asn.ship_date == date(2026, 2, 15)
    assert asn.carrier_scac == "UPSN"
    assert asn.carrier == "UPS Ground"
    assert asn.bill_of_lading == "BOL-555"
    assert asn.po_number == "PO-1001"
    assert asn.tracking_numbers == ["1Z999AA10123456784", "1Z999AA10123456799"]
    assert [(line.vendor_sku, line.quantity_shipped, line.dye_lot) for line in asn.lines] == [
        ("LVP-100", Decimal("470"), "DL-2231"),
        ("CPT-300", Decimal("12"), None),
    ]


# ─── 810 ────────────────────────────────────────────────────────────────────


def test_decode_810_recomputes_subtotals_and_converts_cents(make_interchange):
    txn_set = _first_set(
        make_interchange,
        [
            "ST*810*0001",
            "BIG*20260216*INV-8801*20260210*PO-1001",
            "IT1*1*470*SF*2.89**VP*LVP-100",
            "PID*F****Coastal Oak Plank",
            "IT1*2*3*EA*0.335**VP*TRIM-1",
            "TDS*135931",
            "SE*7*0001",
        ],
    )
    invoice = decode_810(txn_set)

    assert invoice.invoice_number == "INV-8801"
    assert invoice.invoice_date == date(2026, 2, 16)
    assert invoice.po_number == "PO-1001"
    assert invoice.total_amount == Decimal("1359.31")
    assert invoice.lines[0].subtotal == Decimal("1358.30")
    assert invoice.lines[0].description == "Coastal Oak Plank"
    # 3 x 0.335 = 1.005, rounded half up
    assert invoice.lines[1].subtotal == Decimal("1.01")
    assert invoice.summary()["total_amount"] == "1359.31"


# ─── Dispatch ───────────────────────────────────────────────────────────────


def test_dispatch_by_document_type(make_interchange):
    txn_set = _first_set(make_interchange, ["ST*855*0001", "BAK*RD*AT*PO-2", "SE*3*0001"])
    ack = decode_transaction_set(txn_set)
    assert ack.status == "rejected"
    assert DocumentType(txn_set.document_type) is DocumentType.ACKNOWLEDGMENT


def test_unknown_document_type_raises():
    with pytest.raises(UnknownDocumentType) as excinfo:
        decode_transaction_set(TransactionSet(document_type="997", control_number="0001"))
    assert excinfo.value.document_type == "997"


def test_parse_x12_date_formats():
    assert parse_x12_date("20260214") == date(2026, 2, 14)
    assert parse_x12_date("260214") == date(2026, 2, 14)
    assert parse_x12_date("2026") is None
    assert parse_x12_date("20261399") is None
