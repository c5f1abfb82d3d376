"""
EDI 832: Price/Sales Catalog decoder.

Vendors publish their full catalog as one 832 transaction set with a
LIN loop per SKU:

    LIN*1*VN*CA123*UP*012345678905~     ← opens an item
    PO4*1*23.5*SF*CTN*G*42*LB~          ← packaging (size per pack + UOM)
    CTP*WS*NET*2.89**SF~                ← one per price point
    PID*F*08***Coastal Oak Plank~       ← descriptions (code 08 = name)
    MEA**WD*7.5*IN~                     ← measurements
    LIN*2*...                           ← closes the previous item

Each LIN span is collected into a builder. When the span closes (next
LIN, CTT or SE) the derived fields are computed once and the builder is
frozen into an immutable CatalogItem.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from integrations.x12 import Segment, TransactionSet

logger = structlog.get_logger()


# ── Qualifier tables ──────────────────────────────────────────────────────

# LIN / G39 product id qualifiers → identifier names
LIN_QUALIFIERS = {
    "UP": "upc",
    "VN": "vendor_item_number",
    "SK": "sku",
    "MG": "manufacturer_group",
    "BP": "buyer_part_number",
    "IN": "buyer_item_number",
    "MN": "model_number",
    "GN": "generic_name",
    "UA": "upc_case_code",
    "CB": "catalog_number",
    "FS": "standard_number",
    "EC": "ean",
    "EN": "ean",
    "UK": "upc_shipping",
    "PI": "purchaser_item",
    "PN": "part_number",
    "VA": "vendor_alpha",
}

# PID characteristic codes
PID_CODES = {
    "08": "description",
    "GEN": "category",
    "09": "sub_product",
    "73": "color",
    "74": "pattern",
    "75": "finish",
    "35": "species",
    "37": "material",
    "38": "style",
    "DIM": "dimensions",
    "MAC": "material_class",
    "12": "quality",
    "77": "collection",
}

# CTP class-of-trade and price-type codes
CTP_CLASS = {"WS": "wholesale", "RS": "retail", "CT": "contractor", "DE": "dealer", "DI": "distributor"}
CTP_TYPE = {
    "RES": "resale",
    "NET": "net",
    "MSR": "msrp",
    "UCP": "unit_cost",
    "PRP": "promotional",
    "CON": "contract",
    "MAP": "map",
    "CAT": "catalog",
}

# MEA measurement qualifiers
MEA_CODES = {
    "TH": "thickness",
    "WD": "width",
    "LN": "length",
    "WT": "weight",
    "WL": "wear_layer",
    "HT": "height",
    "SQ": "area",
}

AREA_UOMS = {"SF", "SY", "FT2"}
UNIT_UOMS = {"EA", "PC", "LF"}
LINEAR_UOMS = {"LF", "FT"}

DEFAULT_CARPET_KEYWORDS = ("carpet", "broadloom", "tuftex", "caress", "anso")

# Free-text category → catalog category slug
DEFAULT_CATEGORY_MAP = {
    "carpet": "carpet-tile",
    "carpet tile": "carpet-tile",
    "broadloom": "carpet-tile",
    "tuftex": "carpet-tile",
    "anso nylon": "carpet-tile",
    "caress": "carpet-tile",
    "lifeguard": "carpet-tile",
    "engineered hardwood": "engineered-hardwood",
    "hardwood": "hardwood",
    "solid hardwood": "solid-hardwood",
    "epic hardwood": "engineered-hardwood",
    "luxury vinyl plank": "luxury-vinyl",
    "luxury vinyl tile": "luxury-vinyl",
    "lvp": "luxury-vinyl",
    "lvt": "luxury-vinyl",
    "spc": "luxury-vinyl",
    "wpc": "luxury-vinyl",
    "vinyl plank": "luxury-vinyl",
    "vinyl tile": "luxury-vinyl",
    "floorte": "luxury-vinyl",
    "floorte pro": "luxury-vinyl",
    "floorte elite": "luxury-vinyl",
    "resilient": "luxury-vinyl",
    "laminate": "laminate",
    "repel laminate": "laminate",
    "tile": "tile",
    "porcelain": "porcelain-tile",
    "ceramic": "ceramic-tile",
    "stone": "natural-stone",
    "accessory": "installation-sundries",
    "accessories": "installation-sundries",
    "trim": "transitions-moldings",
    "molding": "transitions-moldings",
    "transition": "transitions-moldings",
    "underlayment": "underlayment",
    "adhesive": "adhesives-sealants",
}


# ── Records ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Packaging:
    size_per_pack: Decimal | None = None
    unit_of_measure: str = ""
    pack: str = ""
    packaging_code: str = ""
    gross_weight: Decimal | None = None
    weight_uom: str = ""
    pieces_per_pack: int | None = None
    packs_per_pallet: int | None = None


@dataclass(frozen=True)
class PriceRecord:
    class_of_trade: str = ""
    price_type: str = ""
    unit_price: Decimal | None = None
    quantity: Decimal | None = None
    unit_of_measure: str = ""


@dataclass(frozen=True)
class DescriptionRecord:
    description_type: str = ""
    characteristic_code: str = ""
    description: str = ""

    @property
    def label(self) -> str:
        return PID_CODES.get(self.characteristic_code, self.characteristic_code)


@dataclass(frozen=True)
class MeasurementRecord:
    qualifier: str = ""
    value: Decimal | None = None
    unit_of_measure: str = ""

    @property
    def label(self) -> str:
        return MEA_CODES.get(self.qualifier, self.qualifier)


@dataclass(frozen=True)
class CatalogItem:
    """One decoded 832 LIN loop with its derived catalog fields."""

    line_number: str
    identifiers: dict[str, str]
    packaging: Packaging | None
    prices: tuple[PriceRecord, ...]
    descriptions: tuple[DescriptionRecord, ...]
    measurements: tuple[MeasurementRecord, ...]

    vendor_sku: str | None = None
    upc: str | None = None
    product_name: str | None = None
    color: str | None = None
    collection: str | None = None
    category: str | None = None
    category_slug: str | None = None
    sell_by: str | None = None  # "sqft" or "unit"
    unit_of_measure: str | None = None
    sqft_per_box: Decimal | None = None
    pieces_per_box: int | None = None
    weight_per_box_lbs: Decimal | None = None
    boxes_per_pallet: int | None = None
    sqft_per_pallet: Decimal | None = None
    cost: Decimal | None = None
    retail_price: Decimal | None = None
    map_price: Decimal | None = None
    attributes: dict[str, str] = field(default_factory=dict)

    # Carpet only
    is_carpet: bool = False
    cut_price: Decimal | None = None
    roll_price: Decimal | None = None
    cut_cost: Decimal | None = None
    roll_cost: Decimal | None = None
    roll_width_ft: Decimal | None = None
    roll_min_sqft: Decimal | None = None


@dataclass(frozen=True)
class Catalog:
    items: tuple[CatalogItem, ...]
    declared_total: int
    segment_count: int

    def summary(self) -> dict[str, Any]:
        by_sell_by: dict[str, int] = {}
        by_category: dict[str, int] = {}
        for item in self.items:
            by_sell_by[item.sell_by or "unknown"] = by_sell_by.get(item.sell_by or "unknown", 0) + 1
            key = item.category_slug or "unmapped"
            by_category[key] = by_category.get(key, 0) + 1
        return {
            "items": len(self.items),
            "declared_total": self.declared_total,
            "segment_count": self.segment_count,
            "carpet_items": sum(1 for i in self.items if i.is_carpet),
            "by_sell_by": by_sell_by,
            "by_category": by_category,
        }


# ── Element helpers ───────────────────────────────────────────────────────


def _decimal(value: str) -> Decimal | None:
    value = value.strip()
    if not value:
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        return None


def _int(value: str) -> int | None:
    number = _decimal(value)
    if number is None:
        return None
    try:
        return int(number)
    except (ValueError, ArithmeticError):
        return None


def _first(records, predicate):
    return next((r for r in records if predicate(r)), None)


def _fmt(value: Decimal | None) -> str:
    if value is None:
        return ""
    return format(value.normalize(), "f")


# ── Builder ───────────────────────────────────────────────────────────────


class _CatalogItemBuilder:
    """Accumulates one LIN span; ``build`` runs the derivation exactly once."""

    def __init__(self, line_number: str, identifiers: dict[str, str]):
        self.line_number = line_number
        self.identifiers = dict(identifiers)
        self.packaging: Packaging | None = None
        self.prices: list[PriceRecord] = []
        self.descriptions: list[DescriptionRecord] = []
        self.measurements: list[MeasurementRecord] = []

    def build(
        self,
        carpet_keywords: tuple[str, ...] | list[str],
        category_map: dict[str, str],
    ) -> CatalogItem:
        ids = self.identifiers
        descriptions = self.descriptions
        prices = self.prices
        packaging = self.packaging

        name_pid = _first(descriptions, lambda d: d.characteristic_code == "08") or _first(
            descriptions, lambda d: d.description_type == "F"
        )
        color_pid = _first(descriptions, lambda d: d.label == "color")
        collection_pid = _first(descriptions, lambda d: d.label == "collection")
        category_pid = _first(descriptions, lambda d: d.label == "category")
        category = category_pid.description if category_pid else None

        derived: dict[str, Any] = {
            "vendor_sku": ids.get("vendor_item_number")
            or ids.get("model_number")
            or ids.get("sku")
            or ids.get("part_number"),
            "upc": ids.get("upc"),
            "product_name": name_pid.description if name_pid else None,
            "color": color_pid.description if color_pid else None,
            "collection": collection_pid.description if collection_pid else None,
            "category": category,
            "category_slug": category_map.get(category.lower().strip()) if category else None,
        }

        # Packaging → sell-by unit
        sell_by = None
        sqft_per_box = None
        if packaging is not None:
            uom = packaging.unit_of_measure.upper()
            if uom in AREA_UOMS:
                sell_by = "sqft"
                sqft_per_box = packaging.size_per_pack
            elif uom in UNIT_UOMS:
                sell_by = "unit"
            elif packaging.size_per_pack:
                sell_by = "sqft"
                sqft_per_box = packaging.size_per_pack
            derived["pieces_per_box"] = packaging.pieces_per_pack
            derived["weight_per_box_lbs"] = packaging.gross_weight
            derived["boxes_per_pallet"] = packaging.packs_per_pallet
            if packaging.packs_per_pallet and sqft_per_box:
                derived["sqft_per_pallet"] = sqft_per_box * packaging.packs_per_pallet

        # Cost: NET → wholesale/distributor/dealer class → first record
        cost_record = (
            _first(prices, lambda p: p.price_type == "NET")
            or _first(prices, lambda p: p.class_of_trade == "WS")
            or _first(prices, lambda p: p.class_of_trade == "DI")
            or _first(prices, lambda p: p.class_of_trade == "DE")
            or (prices[0] if prices else None)
        )
        unit_of_measure = None
        if cost_record is not None:
            derived["cost"] = cost_record.unit_price
            unit_of_measure = cost_record.unit_of_measure or None

        retail_record = (
            _first(prices, lambda p: p.price_type == "MSR")
            or _first(prices, lambda p: p.class_of_trade == "RS")
            or _first(prices, lambda p: p.price_type == "CAT")
        )
        if retail_record is not None:
            derived["retail_price"] = retail_record.unit_price

        map_record = _first(prices, lambda p: p.price_type == "MAP")
        if map_record is not None:
            derived["map_price"] = map_record.unit_price

        if sell_by is None and unit_of_measure:
            price_uom = unit_of_measure.upper()
            if price_uom in ("SF", "SY"):
                sell_by = "sqft"
            elif price_uom in ("EA", "PC"):
                sell_by = "unit"

        derived["sell_by"] = sell_by
        derived["sqft_per_box"] = sqft_per_box
        derived["unit_of_measure"] = unit_of_measure
        derived["attributes"] = self._attributes(derived)

        if category and _matches_any(category, carpet_keywords) and prices:
            derived.update(self._carpet_pricing(prices))

        return CatalogItem(
            line_number=self.line_number,
            identifiers=dict(ids),
            packaging=packaging,
            prices=tuple(prices),
            descriptions=tuple(descriptions),
            measurements=tuple(self.measurements),
            **derived,
        )

    def _attributes(self, derived: dict[str, Any]) -> dict[str, str]:
        attributes: dict[str, str] = {}
        if derived.get("color"):
            attributes["color"] = derived["color"]
        if derived.get("upc"):
            attributes["upc"] = derived["upc"]
        for label in ("finish", "material", "species", "style", "pattern"):
            pid = _first(self.descriptions, lambda d, label=label: d.label == label)
            if pid and pid.description:
                attributes[label] = pid.description

        by_qualifier = {m.qualifier: m for m in reversed(self.measurements)}
        thickness = by_qualifier.get("TH")
        width = by_qualifier.get("WD")
        length = by_qualifier.get("LN")
        wear = by_qualifier.get("WL")
        weight = by_qualifier.get("WT")
        if thickness:
            attributes["thickness"] = f"{_fmt(thickness.value)}{thickness.unit_of_measure}"
        if width and length:
            attributes["size"] = f"{_fmt(width.value)}x{_fmt(length.value)}{length.unit_of_measure}"
        elif width:
            attributes["width"] = f"{_fmt(width.value)}{width.unit_of_measure}"
        if wear:
            attributes["wear_layer"] = f"{_fmt(wear.value)}{wear.unit_of_measure or 'mil'}"
        if weight:
            attributes["weight"] = f"{_fmt(weight.value)}{weight.unit_of_measure or 'LB'}"
        return attributes

    def _carpet_pricing(self, prices: list[PriceRecord]) -> dict[str, Any]:
        """Cut (retail/per-unit) and roll (contract/volume) price and cost pairs."""
        cut = _first(prices, lambda p: p.price_type == "MSR") or _first(prices, lambda p: p.class_of_trade == "RS")
        roll = _first(prices, lambda p: p.price_type == "CON") or _first(prices, lambda p: p.class_of_trade == "CT")
        cut_price = cut.unit_price if cut else None
        roll_price = roll.unit_price if roll else None
        if cut_price and not roll_price:
            roll_price = cut_price
        if roll_price and not cut_price:
            cut_price = roll_price

        cut_cost_rec = _first(prices, lambda p: p.price_type == "NET") or _first(
            prices, lambda p: p.class_of_trade == "WS"
        )
        roll_cost_rec = _first(prices, lambda p: p.class_of_trade == "DI") or _first(
            prices, lambda p: p.class_of_trade == "DE"
        )
        cut_cost = cut_cost_rec.unit_price if cut_cost_rec else None
        roll_cost = roll_cost_rec.unit_price if roll_cost_rec else None
        if cut_cost and not roll_cost:
            roll_cost = cut_cost
        if roll_cost and not cut_cost:
            cut_cost = roll_cost

        roll_width_ft = None
        width = _first(self.measurements, lambda m: m.qualifier == "WD")
        if width is not None and width.value:
            inches = width.unit_of_measure.upper() == "IN" or width.value > 24
            roll_width_ft = width.value / 12 if inches else width.value

        roll_min_sqft = None
        packaging = self.packaging
        if roll_width_ft and packaging is not None and packaging.size_per_pack:
            if packaging.unit_of_measure.upper() in LINEAR_UOMS:
                roll_min_sqft = roll_width_ft * packaging.size_per_pack

        return {
            "is_carpet": True,
            "cut_price": cut_price,
            "roll_price": roll_price,
            "cut_cost": cut_cost,
            "roll_cost": roll_cost,
            "roll_width_ft": roll_width_ft,
            "roll_min_sqft": roll_min_sqft,
        }


def _matches_any(text: str, keywords) -> bool:
    lowered = text.lower()
    return any(re.search(re.escape(k.lower()), lowered) for k in keywords if k)


# ── Segment handlers ──────────────────────────────────────────────────────


def _identifier_pairs(seg: Segment, start: int, stop: int | None = None) -> list[tuple[str, str]]:
    stop = len(seg) if stop is None else min(stop, len(seg))
    pairs = []
    for idx in range(start, stop - 1, 2):
        qualifier = seg.element(idx).strip()
        value = seg.element(idx + 1).strip()
        if qualifier and value:
            pairs.append((LIN_QUALIFIERS.get(qualifier, qualifier.lower()), value))
    return pairs


def _on_po4(builder: _CatalogItemBuilder, seg: Segment) -> None:
    builder.packaging = Packaging(
        pack=seg.element(1).strip(),
        size_per_pack=_decimal(seg.element(2)),
        unit_of_measure=seg.element(3).strip(),
        packaging_code=seg.element(4).strip(),
        gross_weight=_decimal(seg.element(6)),
        weight_uom=seg.element(7).strip(),
        pieces_per_pack=_int(seg.element(14)),
        packs_per_pallet=_int(seg.element(17)),
    )


def _on_ctp(builder: _CatalogItemBuilder, seg: Segment) -> None:
    builder.prices.append(
        PriceRecord(
            class_of_trade=seg.element(1).strip(),
            price_type=seg.element(2).strip(),
            unit_price=_decimal(seg.element(3)),
            quantity=_decimal(seg.element(4)),
            unit_of_measure=seg.element(5).strip(),
        )
    )


def _on_pid(builder: _CatalogItemBuilder, seg: Segment) -> None:
    builder.descriptions.append(
        DescriptionRecord(
            description_type=seg.element(1).strip(),
            characteristic_code=seg.element(2).strip(),
            description=seg.element(5).strip(),
        )
    )


def _on_mea(builder: _CatalogItemBuilder, seg: Segment) -> None:
    builder.measurements.append(
        MeasurementRecord(
            qualifier=seg.element(2).strip(),
            value=_decimal(seg.element(3)),
            unit_of_measure=seg.element(4).strip(),
        )
    )


def _on_g39(builder: _CatalogItemBuilder, seg: Segment) -> None:
    for key, value in _identifier_pairs(seg, 2, 6):
        builder.identifiers.setdefault(key, value)
    if seg.element(17).strip():
        builder.descriptions.append(
            DescriptionRecord(description_type="F", characteristic_code="08", description=seg.element(17).strip())
        )
    if seg.element(9).strip() and seg.element(10).strip() and builder.packaging is None:
        builder.packaging = Packaging(
            size_per_pack=_decimal(seg.element(9)),
            unit_of_measure=seg.element(10).strip(),
            pieces_per_pack=_int(seg.element(11)),
        )


ITEM_SEGMENT_HANDLERS = {
    "PO4": _on_po4,
    "CTP": _on_ctp,
    "PID": _on_pid,
    "MEA": _on_mea,
    "G39": _on_g39,
}


# ── Decoder ───────────────────────────────────────────────────────────────


def decode_832(
    txn_set: TransactionSet,
    carpet_keywords: tuple[str, ...] | list[str] = DEFAULT_CARPET_KEYWORDS,
    category_map: dict[str, str] | None = None,
) -> Catalog:
    """Fold an 832 transaction set into a Catalog of derived items."""
    category_map = DEFAULT_CATEGORY_MAP if category_map is None else category_map
    items: list[CatalogItem] = []
    builder: _CatalogItemBuilder | None = None
    declared_total = 0
    skipped = 0

    def close() -> None:
        nonlocal builder
        if builder is not None:
            items.append(builder.build(carpet_keywords, category_map))
            builder = None

    for seg in txn_set.segments:
        if seg.id == "LIN":
            close()
            builder = _CatalogItemBuilder(seg.element(1).strip(), dict(_identifier_pairs(seg, 2)))
        elif seg.id in ("CTT", "SE"):
            close()
            if seg.id == "CTT":
                declared_total = _int(seg.element(1)) or 0
        elif seg.id in ITEM_SEGMENT_HANDLERS:
            if builder is None:
                skipped += 1
                continue
            ITEM_SEGMENT_HANDLERS[seg.id](builder, seg)
    close()

    if skipped:
        logger.debug("edi.832.segments_outside_item", skipped=skipped)

    return Catalog(
        items=tuple(items),
        declared_total=declared_total or len(items),
        segment_count=len(txn_set.segments),
    )
