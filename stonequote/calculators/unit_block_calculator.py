"""
Unit-block (multi-unit development) aggregation.

Takes already-calculated unit quotes and produces one project-level result:
volume tier by total area, separate MATERIAL and FABRICATION volume discount
lines, optional phased installation schedule, and a comparison against
pricing each unit on its own.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence

from ..errors import QuoteValidationError, VolumeTierError
from .money import (
    HUNDRED, ZERO, percent_of, round_money, safe_divide, sum_decimals,
)
from .types import (
    ConsolidatedMaterials, PhasedSchedule, PhaseSchedule, PricingComparison,
    PricingModel, ProjectPhase, ProjectType, UnitBlockAggregate,
    UnitBlockCalculation, UnitCalculation, UnitQuote, VolumeDiscount,
    VolumeDiscountScope, VolumeTier,
)

logger = logging.getLogger(__name__)

DEFAULT_VOLUME_TIERS = (
    VolumeTier(tier_id="small", name="Small Project",
               min_square_metres=Decimal("0"), max_square_metres=Decimal("50"),
               discount_percent=Decimal("0")),
    VolumeTier(tier_id="medium", name="Medium Project",
               min_square_metres=Decimal("50"), max_square_metres=Decimal("200"),
               discount_percent=Decimal("5")),
    VolumeTier(tier_id="large", name="Large Project",
               min_square_metres=Decimal("200"), max_square_metres=Decimal("500"),
               discount_percent=Decimal("10")),
    VolumeTier(tier_id="enterprise", name="Enterprise",
               min_square_metres=Decimal("500"), max_square_metres=None,
               discount_percent=Decimal("15")),
)

DAYS_PER_UNIT = 2
DAYS_BETWEEN_PHASES = 1
CONSOLIDATED_ORDER_SLAB_THRESHOLD = 20


def validate_volume_tiers(tiers: Sequence[VolumeTier]) -> List[VolumeTier]:
    """
    Sort tiers by minimum and check they tile the area axis: each tier's
    maximum is the next tier's minimum, and only the last tier is unbounded.
    """
    if not tiers:
        raise VolumeTierError("At least one volume tier is required")
    ordered = sorted(tiers, key=lambda t: t.min_square_metres)
    for current, following in zip(ordered, ordered[1:]):
        if current.max_square_metres is None:
            raise VolumeTierError(
                f"Tier {current.tier_id!r} is unbounded but is not the highest tier"
            )
        if current.max_square_metres != following.min_square_metres:
            raise VolumeTierError(
                f"Tiers {current.tier_id!r} and {following.tier_id!r} leave a gap or overlap "
                f"({current.max_square_metres} vs {following.min_square_metres})"
            )
    for tier in ordered:
        if tier.max_square_metres is not None and tier.max_square_metres <= tier.min_square_metres:
            raise VolumeTierError(f"Tier {tier.tier_id!r} has max <= min")
    return ordered


def _exact_area(unit: UnitQuote) -> Decimal:
    materials = unit.calculation.materials
    if materials.exact_area_sqm is not None:
        return materials.exact_area_sqm
    return materials.total_area_sqm


class UnitBlockCalculator:

    def __init__(self, volume_tiers: Optional[Sequence[VolumeTier]] = None):
        self.volume_tiers = validate_volume_tiers(volume_tiers or DEFAULT_VOLUME_TIERS)

    def determine_volume_tier(self, total_area_sqm: Decimal) -> VolumeTier:
        """min inclusive, max exclusive. No fallback: an uncovered area is an error."""
        for tier in self.volume_tiers:
            if tier.contains(total_area_sqm):
                return tier
        raise VolumeTierError(f"No volume tier covers {total_area_sqm} m²")

    def calculate(self, project_id: str, units: Sequence[UnitQuote],
                  project_type: ProjectType = ProjectType.UNIT_BLOCK,
                  phases: Optional[Sequence[ProjectPhase]] = None) -> UnitBlockCalculation:
        unit_results = tuple(
            UnitCalculation(
                unit_id=unit.unit_id,
                unit_number=unit.unit_number,
                quote_id=unit.calculation.quote_id,
                area_sqm=unit.calculation.materials.total_area_sqm,
                subtotal=unit.calculation.subtotal,
            )
            for unit in units
        )

        total_area = sum_decimals(_exact_area(unit) for unit in units)
        tier = self.determine_volume_tier(total_area)
        discounts = self.calculate_volume_discounts(tier, units)

        subtotal = sum_decimals(u.subtotal for u in unit_results)
        discount_total = sum_decimals(d.amount for d in discounts)
        logger.info("Unit block %s: %d units, %s m², tier %s",
                    project_id, len(unit_results), total_area, tier.tier_id)

        return UnitBlockCalculation(
            project_id=project_id,
            project_type=project_type,
            units=unit_results,
            volume_tier=tier,
            volume_discounts=discounts,
            phases=tuple(phases) if phases is not None else None,
            aggregate=UnitBlockAggregate(
                total_area_sqm=round_money(total_area),
                total_slabs=sum(unit.calculation.materials.slab_count for unit in units),
                subtotal=round_money(subtotal),
                volume_discount_total=round_money(discount_total),
                grand_total=round_money(subtotal - discount_total),
            ),
        )

    def calculate_volume_discounts(self, tier: VolumeTier,
                                   units: Sequence[UnitQuote]) -> tuple:
        material_total = sum_decimals(u.calculation.materials.total for u in units)
        fabrication_total = sum_decimals(
            u.calculation.edges.total + u.calculation.cutouts.total + u.calculation.services.total
            for u in units
        )
        return (
            VolumeDiscount(
                tier_id=tier.tier_id,
                applies_to=VolumeDiscountScope.MATERIAL,
                discount_percent=tier.discount_percent,
                amount=round_money(percent_of(material_total, tier.discount_percent)),
            ),
            VolumeDiscount(
                tier_id=tier.tier_id,
                applies_to=VolumeDiscountScope.FABRICATION,
                discount_percent=tier.discount_percent,
                amount=round_money(percent_of(fabrication_total, tier.discount_percent)),
            ),
        )

    @staticmethod
    def compare_pricing_models(result: UnitBlockCalculation) -> PricingComparison:
        individual = result.aggregate.subtotal
        project = result.aggregate.grand_total
        savings = individual - project
        return PricingComparison(
            individual_total=round_money(individual),
            project_total=round_money(project),
            savings=round_money(savings),
            savings_percent=round_money(safe_divide(savings * HUNDRED, individual)),
            recommended=PricingModel.PROJECT if project < individual else PricingModel.INDIVIDUAL,
        )

    @staticmethod
    def consolidated_materials(result: UnitBlockCalculation) -> ConsolidatedMaterials:
        material_discount = next(
            (d.amount for d in result.volume_discounts
             if d.applies_to == VolumeDiscountScope.MATERIAL),
            round_money(ZERO),
        )
        total_slabs = result.aggregate.total_slabs
        if total_slabs > CONSOLIDATED_ORDER_SLAB_THRESHOLD:
            recommendation = "Order all slabs together for maximum volume discount"
        else:
            recommendation = "Standard ordering process"
        return ConsolidatedMaterials(
            total_slabs=total_slabs,
            estimated_savings=material_discount,
            recommendation=recommendation,
        )


def build_phases(phase_names_and_indices, units: Sequence[UnitQuote]) -> tuple:
    """
    Turn (name, [unit index, ...]) pairs into ProjectPhase records. Indices
    point into `units`; an index outside the list is rejected.
    """
    phases = []
    for position, (name, indices) in enumerate(phase_names_and_indices):
        unit_ids = []
        for index in indices:
            if not 0 <= index < len(units):
                raise QuoteValidationError(
                    f"Phase {name!r} references unit index {index} out of range", field="phases")
            unit_ids.append(units[index].unit_id)
        phases.append(ProjectPhase(phase_id=f"phase-{position}", name=name, unit_ids=tuple(unit_ids)))
    return tuple(phases)


def generate_phased_schedule(phases: Sequence[ProjectPhase], start_date: date) -> PhasedSchedule:
    """
    Phases run back to back: unit count × 2 days each, one clear day between.
    """
    schedule = []
    cursor = start_date
    for phase in phases:
        days = len(phase.unit_ids) * DAYS_PER_UNIT
        end = cursor + timedelta(days=days)
        schedule.append(PhaseSchedule(
            phase_id=phase.phase_id,
            phase_name=phase.name,
            unit_count=len(phase.unit_ids),
            unit_ids=phase.unit_ids,
            start_date=cursor,
            end_date=end,
            estimated_days=days,
        ))
        cursor = end + timedelta(days=DAYS_BETWEEN_PHASES)

    return PhasedSchedule(
        phases=tuple(schedule),
        total_duration_days=sum(p.estimated_days for p in schedule),
        completion_date=schedule[-1].end_date if schedule else None,
    )
