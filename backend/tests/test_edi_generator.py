"""
Unit tests for the 850 encoder: envelope layout, round-trip and hard/soft split.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from integrations.edi_documents import decode_850
from integrations.edi_generator import (
    ControlNumberTriple,
    PurchaseOrderLine,
    build_850,
    outbound_filename,
    plan_850_documents,
    split_by_surface,
)
from integrations.partner_config import PartnerEDIConfig, ShipTo
from integrations.x12 import parse_interchange, tokenize

HARD = ["hardwood", "laminate", "vinyl", "tile"]
NOW = datetime(2026, 2, 15, 9, 30)


@pytest.fixture
def config():
    return PartnerEDIConfig(
        receiver_id="SHAWFLOORS",
        account_number="0133954",
        hard_surface_categories=HARD,
        ship_to=ShipTo(
            name="Roma Flooring Designs",
            address="1440 S State College Blvd Ste 6M",
            city="Anaheim",
            state="CA",
            postal_code="92806",
        ),
    )


@pytest.fixture
def lines():
    return [
        PurchaseOrderLine(
            quantity=Decimal("470"),
            cost=Decimal("2.89"),
            vendor_sku="LVP-100",
            product_name="Coastal Oak Plank",
            category_name="Luxury Vinyl Plank",
            sell_by="sqft",
        ),
        PurchaseOrderLine(
            quantity=Decimal("12.5"),
            cost=Decimal("35.5"),
            vendor_sku="CPT-300",
            product_name="Tuftex Cabana Life",
            category_name="Carpet",
        ),
        PurchaseOrderLine(
            quantity=Decimal("3"),
            cost=Decimal("14"),
            description="Stair nose, no SKU on file",
            category_name="Hardwood Trim",
        ),
    ]


def _build(lines, config, controls=ControlNumberTriple(17, 18, 19)):
    return build_850("PO-1001", lines, config, controls, NOW)


def test_isa_header_is_fixed_width(lines, config):
    content = _build(lines, config)
    header = content.split("\n", 1)[0]
    assert len(header) == 106
    assert header[3] == "*"
    assert header[104] == ":"
    assert header[105] == "~"
    assert "*000000017*0*P*" in header


def test_control_numbers_and_segment_count(lines, config):
    content = _build(lines, config)
    segments = tokenize(content)
    by_id = {s.id: s for s in segments}

    assert by_id["GS"].element(6) == "000000018"
    assert by_id["GE"].element(2) == "000000018"
    assert by_id["ST"].element(2) == "0019"
    assert by_id["SE"].element(2) == "0019"
    assert by_id["IEA"].element(2) == "000000017"

    ids = [s.id for s in segments]
    st_to_se = ids[ids.index("ST") : ids.index("SE") + 1]
    assert int(by_id["SE"].element(1)) == len(st_to_se)


def test_segment_order_and_line_formatting(lines, config):
    segments = tokenize(_build(lines, config))
    ids = [s.id for s in segments]
    assert ids[:8] == ["ISA", "GS", "ST", "BEG", "REF", "N1", "N3", "N4"]
    assert ids[-4:] == ["CTT", "SE", "GE", "IEA"]

    po1s = [s for s in segments if s.id == "PO1"]
    assert [p.elements for p in po1s] == [
        ("PO1", "0001", "470", "SF", "2.89", "PE", "VP", "LVP-100"),
        ("PO1", "0002", "12.5", "EA", "35.50", "PE", "VP", "CPT-300"),
        ("PO1", "0003", "3", "EA", "14.00", "PE"),
    ]
    n1 = next(s for s in segments if s.id == "N1")
    assert n1.elements == ("N1", "ST", "Roma Flooring Designs", "92", "0133954")


def test_round_trip_through_decoder(lines, config):
    interchange = parse_interchange(_build(lines, config))
    po = decode_850(interchange.transaction_sets[0])

    assert interchange.envelope.sender_id == "ROMAFLOOR"
    assert interchange.envelope.receiver_id == "SHAWFLOORS"
    assert interchange.envelope.interchange_control_number == 17
    assert po.po_number == "PO-1001"
    assert po.account_number == "0133954"
    assert po.ship_to.city == "Anaheim"
    assert po.declared_line_count == len(lines)
    assert [(r.vendor_sku, r.quantity, r.unit_price) for r in po.lines] == [
        ("LVP-100", Decimal("470"), Decimal("2.89")),
        ("CPT-300", Decimal("12.5"), Decimal("35.50")),
        ("", Decimal("3"), Decimal("14.00")),
    ]
    assert po.lines[2].description == "Stair nose, no SKU on file"


def test_optional_header_segments_are_omitted(lines):
    bare = PartnerEDIConfig(receiver_id="SHAWFLOORS", usage_indicator="T")
    content = _build(lines, bare)
    ids = [s.id for s in tokenize(content)]
    assert "REF" not in ids
    assert "N1" not in ids
    assert content.split("\n", 1)[0][102] == "T"


def test_custom_delimiters(lines, config):
    custom = config.model_copy(update={"element_separator": "|", "segment_terminator": "^"})
    content = _build(lines, custom)
    interchange = parse_interchange(content)
    assert interchange.envelope.delimiters.element == "|"
    assert decode_850(interchange.transaction_sets[0]).po_number == "PO-1001"


def test_description_truncated_to_80_chars(config):
    long_line = PurchaseOrderLine(quantity=Decimal("1"), cost=Decimal("1"), product_name="x" * 120)
    pid = next(s for s in tokenize(_build([long_line], config)) if s.id == "PID")
    assert len(pid.element(5)) == 80


# ─── Hard / soft split ──────────────────────────────────────────────────────


def test_split_partitions_by_keyword(lines):
    hard, soft = split_by_surface(lines, HARD)
    assert [line.vendor_sku for line in hard] == ["LVP-100", ""]
    assert [line.vendor_sku for line in soft] == ["CPT-300"]


def test_mixed_po_yields_two_documents(lines, config):
    plan = plan_850_documents(lines, config)
    assert [surface for surface, _ in plan] == ["H", "S"]
    assert sum(len(group) for _, group in plan) == len(lines)
    assert all(line.category_name != "Carpet" for line in plan[0][1])
    assert all(line.category_name == "Carpet" for line in plan[1][1])


@pytest.mark.parametrize("keep", ["hard", "soft"])
def test_single_surface_po_yields_one_document(lines, config, keep):
    subset = [line for line in lines if (line.category_name != "Carpet") == (keep == "hard")]
    plan = plan_850_documents(subset, config)
    assert len(plan) == 1
    assert plan[0][0] is None
    assert plan[0][1] == subset


def test_split_rule_is_table_driven(lines, config):
    everything_soft = config.model_copy(update={"hard_surface_categories": []})
    assert len(plan_850_documents(lines, everything_soft)) == 1


def test_empty_po_is_rejected(config):
    with pytest.raises(ValueError, match="no lines"):
        plan_850_documents([], config)


def test_outbound_filenames():
    assert outbound_filename("PO-1001", 17) == "850_PO-1001_000000017.edi"
    assert outbound_filename("PO-1001", 17, "H") == "850_PO-1001_H_000000017.edi"
