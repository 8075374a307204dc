"""
Edge, cutout, service and join calculator tests.

Tests:
1-10.  Edge profiles: thickness tiers, minimums, grouping, discount
11-14. Cutouts
15-28. Services under each unit configuration, delivery and templating
29-35. Join estimation and join pricing
"""

from decimal import Decimal

import pytest

from stonequote.calculators.cutout_calculator import CutoutCalculator
from stonequote.calculators.edge_calculator import (
    EdgeCalculator, finished_edge_length_metres, perimeter_metres, referenced_edge_ids,
)
from stonequote.calculators.join_estimator import HeuristicJoinEstimator, JoinCalculator
from stonequote.calculators.service_calculator import FlexibleServiceCalculator
from stonequote.calculators.types import (
    CuttingUnit, CutoutSelection, CutoutType, DeliveryUnit, EdgeProfile, EdgeSide,
    InstallationUnit, JoinStrategy, Piece, QuoteData, ServiceRate, ServiceType,
    ServiceUnitConfig, TemplatingUnit,
)
from stonequote.errors import QuoteValidationError


def _piece(piece_id="p-1", length=2000, width=600, thickness=20, edges=None, cutouts=()):
    return Piece(
        piece_id=piece_id, length_mm=length, width_mm=width, thickness_mm=thickness,
        edges=edges or {}, cutouts=tuple(cutouts),
    )


def _profile(edge_type_id="bullnose", name="Bullnose", base="55", r20=None, r40=None,
             min_charge=None, min_length=None):
    def dec(v):
        return Decimal(v) if v is not None else None
    return EdgeProfile(
        edge_type_id=edge_type_id, name=name, base_rate=Decimal(base),
        rate_20mm=dec(r20), rate_40mm=dec(r40),
        minimum_charge=dec(min_charge), minimum_length=dec(min_length),
    )


def _rate(service_type, r20, r40=None, minimum=None, name=None):
    return ServiceRate(
        service_type=service_type,
        name=name or service_type.value.title(),
        rate_20mm=Decimal(r20),
        rate_40mm=Decimal(r40 if r40 is not None else r20),
        minimum_charge=Decimal(minimum) if minimum is not None else None,
    )


# ============================================================
# Edges
# ============================================================

def test_thickness_tier_boundary():
    """20mm takes the 20mm rate, 21mm the 40mm rate."""
    profile = _profile(r20="10", r40="25")
    assert EdgeCalculator.select_rate(profile, 20) == Decimal("10")
    assert EdgeCalculator.select_rate(profile, 21) == Decimal("25")


def test_base_rate_when_tier_missing():
    profile = _profile(base="30")
    assert EdgeCalculator.select_rate(profile, 20) == Decimal("30")
    assert EdgeCalculator.select_rate(profile, 40) == Decimal("30")


def test_zero_tier_rate_is_a_real_rate():
    profile = _profile("pencil_round", "Pencil Round", base="45", r20="0", r40="0")
    piece = _piece(edges={EdgeSide.TOP: "pencil_round"})
    result = EdgeCalculator([profile]).calculate([piece])
    assert result.total == Decimal("0.00")
    assert result.total_linear_metres == Decimal("0.60")


def test_top_and_bottom_run_along_width():
    """2000 × 600 with top + bottom at $30/m → 1.2 m → $36.00."""
    piece = _piece(edges={EdgeSide.TOP: "square", EdgeSide.BOTTOM: "square"})
    result = EdgeCalculator([_profile("square", "Square", base="30")]).calculate([piece])
    assert result.total_linear_metres == Decimal("1.20")
    assert result.total == Decimal("36.00")
    assert finished_edge_length_metres(2000, 600, piece.edges) == Decimal("1.2")
    assert perimeter_metres(2000, 600) == Decimal("5.2")


def test_minimum_length_then_minimum_charge():
    """0.5 m at $100 → padded to 1.0 m ($100) → clamped to the $150 minimum."""
    profile = _profile("curved", "Curved", base="100", min_length="1.0", min_charge="150")
    piece = _piece(width=500, edges={EdgeSide.TOP: "curved"})
    assert EdgeCalculator([profile]).calculate([piece]).total == Decimal("150.00")


def test_minimum_charge_without_padding():
    """1.2 m at $100 is already past the minimum length; $120 is clamped to $150."""
    profile = _profile("curved", "Curved", base="100", min_length="1.0", min_charge="150")
    piece = _piece(width=1200, edges={EdgeSide.TOP: "curved"})
    assert EdgeCalculator([profile]).calculate([piece]).total == Decimal("150.00")


def test_minimum_length_alone():
    profile = _profile("curved", "Curved", base="100", min_length="1.0", min_charge="80")
    piece = _piece(width=500, edges={EdgeSide.TOP: "curved"})
    assert EdgeCalculator([profile]).calculate([piece]).total == Decimal("100.00")


def test_groups_by_profile_and_thickness():
    profile = _profile(r20="10", r40="25")
    pieces = [
        _piece("a", edges={EdgeSide.LEFT: "bullnose"}),
        _piece("b", thickness=40, edges={EdgeSide.LEFT: "bullnose"}),
        _piece("c", edges={EdgeSide.RIGHT: "bullnose"}),
    ]
    result = EdgeCalculator([profile]).calculate(pieces)
    names = [b.edge_type_name for b in result.by_type]
    assert names == ["Bullnose (20mm)", "Bullnose (40mm)"]
    assert result.by_type[0].linear_metres == Decimal("4.00")
    assert result.total == Decimal("90.00")  # 4 m × $10 + 2 m × $25
    assert referenced_edge_ids(pieces) == ["bullnose"]


def test_fabrication_discount_on_edges():
    piece = _piece(edges={EdgeSide.TOP: "square", EdgeSide.BOTTOM: "square"})
    result = EdgeCalculator([_profile("square", "Square", base="30")],
                            fabrication_discount_percent=Decimal("10")).calculate([piece])
    assert result.subtotal == Decimal("36.00")
    assert result.discount == Decimal("3.60")
    assert result.total == Decimal("32.40")
    assert result.total == sum(b.total for b in result.by_type)


def test_inactive_profile_not_billed():
    piece = _piece(edges={EdgeSide.TOP: "discontinued", EdgeSide.BOTTOM: "square"})
    result = EdgeCalculator([_profile("square", "Square", base="30")]).calculate([piece])
    assert result.total == Decimal("18.00")
    assert [e.side for e in result.pieces[0].edges] == [EdgeSide.BOTTOM]


# ============================================================
# Cutouts
# ============================================================

TAP_HOLE = CutoutType(cutout_type_id="tap_hole", name="Tap Hole", base_rate=Decimal("65"))
UNDERMOUNT = CutoutType(cutout_type_id="undermount_sink", name="Undermount Sink",
                        base_rate=Decimal("300"))


def test_cutouts_summed_per_type():
    pieces = [
        _piece("a", cutouts=[CutoutSelection(cutout_type_id="undermount_sink"),
                             CutoutSelection(cutout_type_id="tap_hole", quantity=2)]),
        _piece("b", cutouts=[CutoutSelection(cutout_type_id="tap_hole")]),
    ]
    result = CutoutCalculator([TAP_HOLE, UNDERMOUNT]).calculate(pieces)
    assert [i.cutout_type_name for i in result.items] == ["Tap Hole", "Undermount Sink"]
    assert result.items[0].quantity == 3
    assert result.items[0].total == Decimal("195.00")
    assert result.total == Decimal("495.00")


def test_cutout_minimum_charge():
    groove = CutoutType(cutout_type_id="groove", name="Groove", base_rate=Decimal("20"),
                        minimum_charge=Decimal("50"))
    piece = _piece(cutouts=[CutoutSelection(cutout_type_id="groove", quantity=2)])
    assert CutoutCalculator([groove]).calculate([piece]).total == Decimal("50.00")


def test_cutout_quantity_must_be_positive():
    piece = _piece(cutouts=[CutoutSelection(cutout_type_id="tap_hole", quantity=0)])
    with pytest.raises(QuoteValidationError) as exc:
        CutoutCalculator([TAP_HOLE]).calculate([piece])
    assert exc.value.field == "cutouts.quantity"


def test_negative_cutout_rate_rejected():
    with pytest.raises(ValueError):
        CutoutType(cutout_type_id="bad", name="Bad", base_rate=Decimal("-1"))


# ============================================================
# Services
# ============================================================

STANDARD_RATES = [
    _rate(ServiceType.CUTTING, "17.50", "45.00", "50"),
    _rate(ServiceType.POLISHING, "45", "115", "50"),
    _rate(ServiceType.INSTALLATION, "140", "170", "200"),
    _rate(ServiceType.WATERFALL_END, "300", "650", "300", name="Waterfall End"),
]


def _services(units=None, rates=STANDARD_RATES, discount="0"):
    return FlexibleServiceCalculator(units or ServiceUnitConfig(), rates, Decimal(discount))


def _line(result, service_type):
    return next(i for i in result.items if i.service_type == service_type)


def test_default_units():
    piece = _piece(edges={EdgeSide.TOP: "square", EdgeSide.BOTTOM: "square"})
    result = _services().calculate([piece])
    assert _line(result, ServiceType.CUTTING).quantity == Decimal("5.20")
    assert _line(result, ServiceType.CUTTING).total == Decimal("91.00")
    assert _line(result, ServiceType.POLISHING).total == Decimal("54.00")
    # 1.2 m² × $140 = $168, raised to the $200 minimum
    assert _line(result, ServiceType.INSTALLATION).total == Decimal("200.00")
    assert result.total == Decimal("345.00")


def test_thick_piece_uses_40mm_rate():
    result = _services().calculate([_piece(thickness=40)])
    assert _line(result, ServiceType.CUTTING).total == Decimal("234.00")


def test_no_polishing_line_without_finished_edges():
    result = _services().calculate([_piece()])
    assert ServiceType.POLISHING not in {i.service_type for i in result.items}


def test_fixed_per_piece_cutting_with_minimum():
    units = ServiceUnitConfig(cutting=CuttingUnit.FIXED_PER_PIECE)
    result = _services(units).calculate([_piece("a"), _piece("b")])
    line = _line(result, ServiceType.CUTTING)
    assert line.quantity == Decimal("2.00")
    assert line.unit == "piece"
    assert line.total == Decimal("50.00")


def test_hourly_installation():
    units = ServiceUnitConfig(installation=InstallationUnit.HOURLY)
    rates = [_rate(ServiceType.INSTALLATION, "140")]
    line = _line(_services(units, rates).calculate([_piece()]), ServiceType.INSTALLATION)
    assert line.quantity == Decimal("0.60")
    assert line.unit == "hours"
    assert line.total == Decimal("84.00")


def test_waterfall_end():
    piece = _piece(edges={EdgeSide.LEFT: "waterfall"})
    line = _line(_services().calculate([piece]), ServiceType.WATERFALL_END)
    assert line.quantity == Decimal("1.00")
    assert line.unit == "each"
    assert line.total == Decimal("300.00")


def test_missing_rate_omits_line():
    result = _services(rates=[]).calculate([_piece()])
    assert result.items == ()
    assert result.total == Decimal("0.00")


def test_service_discount_per_line():
    result = _services(discount="10").calculate([_piece()])
    cutting = _line(result, ServiceType.CUTTING)
    assert cutting.subtotal == Decimal("91.00")
    assert cutting.discount == Decimal("9.10")
    assert cutting.total == Decimal("81.90")


def test_delivery_per_km_with_minimum_and_override():
    rates = [_rate(ServiceType.DELIVERY, "5", minimum="100")]
    calc = _services(rates=rates)
    near = calc.delivery_breakdown(QuoteData(quote_id="q", delivery_distance_km=Decimal("10")))
    far = calc.delivery_breakdown(QuoteData(quote_id="q", delivery_distance_km=Decimal("30")))
    overridden = calc.delivery_breakdown(QuoteData(
        quote_id="q", delivery_distance_km=Decimal("30"), override_delivery_cost=Decimal("80")))
    assert near.final_cost == Decimal("100.00")
    assert far.final_cost == Decimal("150.00")
    assert far.rate_per_km == Decimal("5.00")
    assert overridden.calculated_cost == Decimal("150.00")
    assert overridden.final_cost == Decimal("80.00")


def test_delivery_not_requested_or_not_configured():
    calc = _services(rates=[])
    assert calc.delivery_breakdown(QuoteData(quote_id="q")).final_cost == Decimal("0.00")
    stored = calc.delivery_breakdown(QuoteData(
        quote_id="q", delivery_address="1 Quarry Rd", delivery_cost=Decimal("120")))
    assert stored.final_cost == Decimal("120.00")


def test_per_km_delivery_without_distance_keeps_stored_cost():
    calc = _services(rates=[_rate(ServiceType.DELIVERY, "5", minimum="100")])
    result = calc.delivery_breakdown(QuoteData(
        quote_id="q", delivery_zone="Metro", delivery_cost=Decimal("120")))
    assert calc.calculate_delivery(zone="Metro") is None
    assert result.calculated_cost == Decimal("0.00")
    assert result.final_cost == Decimal("120.00")


def test_per_km_templating_without_distance_keeps_stored_cost():
    calc = _services(rates=[_rate(ServiceType.TEMPLATING, "2", minimum="180")])
    result = calc.templating_breakdown(QuoteData(
        quote_id="q", templating_required=True, templating_cost=Decimal("150")))
    assert result.final_cost == Decimal("150.00")


def test_fixed_zone_delivery():
    units = ServiceUnitConfig(delivery=DeliveryUnit.FIXED_ZONE)
    calc = _services(units, [_rate(ServiceType.DELIVERY, "95")])
    result = calc.delivery_breakdown(QuoteData(quote_id="q", delivery_zone="Metro"))
    assert result.base_charge == Decimal("95.00")
    assert result.final_cost == Decimal("95.00")


def test_templating_only_when_required():
    units = ServiceUnitConfig(templating=TemplatingUnit.FIXED)
    calc = _services(units, [_rate(ServiceType.TEMPLATING, "180")])
    assert calc.templating_breakdown(QuoteData(quote_id="q")).final_cost == Decimal("0.00")
    required = calc.templating_breakdown(QuoteData(quote_id="q", templating_required=True))
    assert required.base_charge == Decimal("180.00")
    assert required.final_cost == Decimal("180.00")


# ============================================================
# Joins
# ============================================================

def test_piece_that_fits_needs_no_join():
    estimate = HeuristicJoinEstimator().estimate(_piece(length=3200))
    assert estimate.strategy == JoinStrategy.NONE
    assert estimate.join_count == 0


def test_single_lengthwise_join():
    estimate = HeuristicJoinEstimator().estimate(_piece(length=3201, width=600))
    assert estimate.strategy == JoinStrategy.LENGTHWISE
    assert estimate.join_count == 1
    assert estimate.join_length_mm == 600


def test_widthwise_join():
    estimate = HeuristicJoinEstimator().estimate(_piece(length=600, width=4000))
    assert estimate.strategy == JoinStrategy.WIDTHWISE
    assert estimate.join_length_mm == 600


def test_multi_join_warns():
    estimate = HeuristicJoinEstimator().estimate(_piece(length=7000, width=600))
    assert estimate.strategy == JoinStrategy.MULTI_JOIN
    assert estimate.join_count == 2
    assert estimate.join_length_mm == 1200
    assert estimate.warnings


def test_join_pricing_per_piece():
    join_rate = _rate(ServiceType.JOIN, "100", "150")
    joins = JoinCalculator(join_rate=join_rate).calculate([
        _piece("short"),
        _piece("long", length=4000, width=600, thickness=40),
    ])
    assert [j.piece_id for j in joins] == ["long"]
    assert joins[0].fits_on_single_slab is False
    assert joins[0].total == Decimal("90.00")  # 0.6 m × $150


def test_join_without_rate_is_free_but_reported():
    joins = JoinCalculator().calculate([_piece(length=4000)])
    assert joins[0].join_count == 1
    assert joins[0].total == Decimal("0.00")


def test_join_line_in_services_is_optional():
    rates = [_rate(ServiceType.JOIN, "100")]
    piece = _piece(length=4000, width=600)
    with_joins = _services(rates=rates).calculate([piece])
    assert _line(with_joins, ServiceType.JOIN).total == Decimal("60.00")
    assert _line(with_joins, ServiceType.JOIN).name == "Join Seams"
    assert _services(rates=rates).calculate([piece], include_joins=False).items == ()
