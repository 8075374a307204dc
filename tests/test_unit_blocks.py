"""
Unit-block aggregation tests: volume tiers, volume discounts, comparison, schedule.
"""

from datetime import date
from decimal import Decimal

import pytest

from stonequote.calculators.types import (
    EdgeProfile, EdgeSide, MaterialPricing, MaterialPricingBasis, Piece,
    PricingConfiguration, PricingContext, PricingModel, QuoteData, QuoteSnapshot,
    UnitQuote, VolumeTier,
)
from stonequote.calculators.unit_block_calculator import (
    UnitBlockCalculator, build_phases, generate_phased_schedule, validate_volume_tiers,
)
from stonequote.errors import QuoteValidationError, VolumeTierError
from stonequote.pricing_engine import PricingEngine


def _unit(unit_id, quote_id, length=2000, width=600):
    """A unit whose quote is one benchtop; 2000 × 600 is $690 material + $36 edges."""
    piece = Piece(
        piece_id=f"{quote_id}-1", length_mm=length, width_mm=width,
        edges={EdgeSide.TOP: "square", EdgeSide.BOTTOM: "square"},
        material=MaterialPricing(material_id="m-1", price_per_sqm=Decimal("500")),
    )
    snapshot = QuoteSnapshot(
        quote=QuoteData(quote_id=quote_id, pieces=(piece,)),
        context=PricingContext(organisation_id="org-1",
                               material_pricing_basis=MaterialPricingBasis.PER_SQUARE_METRE),
        pricing=PricingConfiguration(edge_profiles=(
            EdgeProfile(edge_type_id="square", name="Square", base_rate=Decimal("30")),)),
    )
    engine = PricingEngine()
    try:
        calculation = engine.calculate_from_data(snapshot)
    finally:
        engine.shutdown()
    return UnitQuote(unit_id=unit_id, unit_number=unit_id.upper(), calculation=calculation)


def _tier(tier_id, low, high, pct):
    return VolumeTier(
        tier_id=tier_id, name=tier_id.title(),
        min_square_metres=Decimal(low),
        max_square_metres=Decimal(high) if high is not None else None,
        discount_percent=Decimal(pct),
    )


# ============================================================
# Volume tiers
# ============================================================

@pytest.mark.parametrize("area,tier_id", [
    ("0", "small"),
    ("49.99", "small"),
    ("50", "medium"),
    ("199.99", "medium"),
    ("200", "large"),
    ("500", "enterprise"),
    ("12000", "enterprise"),
])
def test_default_tier_boundaries(area, tier_id):
    assert UnitBlockCalculator().determine_volume_tier(Decimal(area)).tier_id == tier_id


def test_area_below_every_tier_is_an_error():
    calc = UnitBlockCalculator([_tier("big", "10", None, "5")])
    with pytest.raises(VolumeTierError):
        calc.determine_volume_tier(Decimal("9.99"))


def test_tier_table_must_be_contiguous():
    with pytest.raises(VolumeTierError):
        validate_volume_tiers([_tier("a", "0", "50", "0"), _tier("b", "60", None, "5")])


def test_only_last_tier_may_be_unbounded():
    with pytest.raises(VolumeTierError):
        validate_volume_tiers([_tier("a", "0", None, "0"), _tier("b", "50", None, "5")])


def test_tiers_sorted_by_minimum():
    ordered = validate_volume_tiers([_tier("b", "50", None, "5"), _tier("a", "0", "50", "0")])
    assert [t.tier_id for t in ordered] == ["a", "b"]


# ============================================================
# Aggregation
# ============================================================

def test_small_project_has_no_volume_discount():
    units = [_unit("u1", "q1"), _unit("u2", "q2")]
    result = UnitBlockCalculator().calculate("proj-1", units)
    assert result.volume_tier.tier_id == "small"
    assert result.aggregate.total_area_sqm == Decimal("2.40")
    assert result.aggregate.subtotal == Decimal("1452.00")
    assert result.aggregate.grand_total == Decimal("1452.00")

    comparison = UnitBlockCalculator.compare_pricing_models(result)
    assert comparison.savings == Decimal("0.00")
    assert comparison.recommended == PricingModel.INDIVIDUAL


def test_volume_discount_split_by_scope():
    units = [_unit("u1", "q1"), _unit("u2", "q2")]
    calc = UnitBlockCalculator([_tier("all", "0", None, "10")])
    result = calc.calculate("proj-1", units)

    material, fabrication = result.volume_discounts
    assert material.amount == Decimal("138.00")
    assert fabrication.amount == Decimal("7.20")
    assert result.aggregate.volume_discount_total == Decimal("145.20")
    assert result.aggregate.grand_total == Decimal("1306.80")

    comparison = UnitBlockCalculator.compare_pricing_models(result)
    assert comparison.savings == Decimal("145.20")
    assert comparison.savings_percent == Decimal("10.00")
    assert comparison.recommended == PricingModel.PROJECT

    materials = UnitBlockCalculator.consolidated_materials(result)
    assert materials.estimated_savings == Decimal("138.00")
    assert materials.recommendation == "Standard ordering process"


def test_project_area_summed_before_rounding():
    """Three 0.334 m² units: 1.002 m² exact, 0.99 m² if each were rounded first."""
    units = [_unit(f"u{i}", f"q{i}", length=1000, width=334) for i in range(3)]
    calc = UnitBlockCalculator([_tier("small", "0", "1", "0"), _tier("volume", "1", None, "5")])
    result = calc.calculate("proj-1", units)
    assert result.units[0].area_sqm == Decimal("0.33")
    assert result.aggregate.total_area_sqm == Decimal("1.00")
    assert result.volume_tier.tier_id == "volume"


# ============================================================
# Phases and schedule
# ============================================================

def test_phased_schedule():
    units = [_unit("u1", "q1"), _unit("u2", "q2"), _unit("u3", "q3")]
    phases = build_phases([("Stage 1", [0, 1]), ("Stage 2", [2])], units)
    assert phases[0].unit_ids == ("u1", "u2")

    schedule = generate_phased_schedule(phases, date(2026, 1, 5))
    first, second = schedule.phases
    assert first.end_date == date(2026, 1, 9)
    assert second.start_date == date(2026, 1, 10)
    assert second.end_date == date(2026, 1, 12)
    assert schedule.total_duration_days == 6
    assert schedule.completion_date == date(2026, 1, 12)


def test_empty_schedule():
    schedule = generate_phased_schedule([], date(2026, 1, 5))
    assert schedule.phases == ()
    assert schedule.completion_date is None


def test_phase_index_out_of_range():
    with pytest.raises(QuoteValidationError):
        build_phases([("Stage 1", [3])], [_unit("u1", "q1")])
