"""
Material cost for a set of pieces, per slab or per square metre.

Area is exact until output. Override pieces are priced verbatim and never
recomputed. When a nesting result supplies a slab count, the per-slab
aggregate is slab price × slab count rather than the sum of apportioned
per-piece costs, so rounding is applied once, not per piece.
Waste is applied once, to the final subtotal.
"""

import logging
import math
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from ..slab_sizes import get_slab_size
from .base import BaseCalculator
from .money import (
    HUNDRED, ZERO, area_sq_metres, round_money, round_percent, safe_divide,
    sum_decimals, to_decimal,
)
from .types import (
    MaterialCalculation, MaterialPricingBasis, Piece, PieceMaterialCost,
    PricingContext, SlabEstimate,
)

logger = logging.getLogger(__name__)

DEFAULT_WASTE_FACTOR = Decimal("1.15")


class MaterialCalculator(BaseCalculator):
    """Prices the stone itself. No fabrication discount applies here."""

    def __init__(self, default_waste_factor: Decimal = DEFAULT_WASTE_FACTOR):
        self.default_waste_factor = to_decimal(default_waste_factor)

    def calculate(self, pieces: Sequence[Piece], context: PricingContext,
                  slab_count: Optional[int] = None,
                  category: str = "") -> MaterialCalculation:
        self.validate_pieces(pieces)
        strategy = context.material_pricing_basis
        waste_factor = to_decimal(context.waste_factor) or self.default_waste_factor

        overrides = [p for p in pieces if p.override_material_cost is not None]
        priced = [p for p in pieces if p.override_material_cost is None]

        # Exact (unrounded) cost per piece id, rounded only for reporting
        exact_costs: Dict[str, Decimal] = {}
        unit_costs: Dict[str, Decimal] = {}

        for piece in overrides:
            override = to_decimal(piece.override_material_cost)
            exact_costs[piece.piece_id] = override
            unit_costs[piece.piece_id] = safe_divide(
                override, area_sq_metres(piece.length_mm, piece.width_mm))

        for piece in priced:
            unit = self._piece_unit_cost(piece, strategy, category)
            unit_costs[piece.piece_id] = unit
            exact_costs[piece.piece_id] = area_sq_metres(piece.length_mm, piece.width_mm) * unit

        if strategy == MaterialPricingBasis.PER_SLAB and slab_count and priced:
            aggregate = self._slab_aggregate(priced, slab_count)
            priced_area = piece_area_total(priced)
            derived_unit = safe_divide(aggregate, priced_area)
            for piece in priced:
                unit_costs[piece.piece_id] = derived_unit
                exact_costs[piece.piece_id] = (
                    area_sq_metres(piece.length_mm, piece.width_mm) * derived_unit
                )
            raw_total = sum_decimals(exact_costs[p.piece_id] for p in overrides) + aggregate
        else:
            raw_total = sum_decimals(exact_costs.values())

        piece_results = tuple(
            PieceMaterialCost(
                piece_id=piece.piece_id,
                area_sqm=round_money(area_sq_metres(piece.length_mm, piece.width_mm)),
                strategy=strategy,
                unit_cost=round_money(unit_costs[piece.piece_id]),
                total_cost=round_money(exact_costs[piece.piece_id]),
                is_override=piece.override_material_cost is not None,
            )
            for piece in pieces
        )

        total_area = piece_area_total(pieces)
        subtotal = round_money(raw_total * waste_factor)

        return MaterialCalculation(
            strategy=strategy,
            pieces=piece_results,
            slab_count=slab_count or 0,
            total_area_sqm=round_money(total_area),
            exact_area_sqm=total_area,
            unit_cost=round_money(safe_divide(raw_total, total_area)),
            waste_factor=waste_factor,
            subtotal=subtotal,
            discount=round_money(ZERO),
            total=subtotal,
        )

    def _piece_unit_cost(self, piece: Piece, strategy: MaterialPricingBasis,
                         category: str) -> Decimal:
        material = piece.material
        if material is None:
            return ZERO
        if strategy == MaterialPricingBasis.PER_SLAB and to_decimal(material.price_per_slab) > ZERO:
            slab = get_slab_size(material.category or category)
            return safe_divide(material.price_per_slab, slab.area_sqm)
        return to_decimal(material.price_per_sqm)

    def _slab_aggregate(self, priced: List[Piece], slab_count: int) -> Decimal:
        """Slab price × slab count, or area × average area rate when no slab price exists."""
        for piece in priced:
            if piece.material is not None and to_decimal(piece.material.price_per_slab) > ZERO:
                return to_decimal(piece.material.price_per_slab) * slab_count

        rates = [to_decimal(p.material.price_per_sqm) for p in priced if p.material is not None]
        average_rate = safe_divide(sum_decimals(rates), len(rates))
        area = piece_area_total(priced)
        logger.debug("No slab price on any piece, using average area rate %s", average_rate)
        return area * average_rate

    def estimate_slabs(self, pieces: Sequence[Piece], category: str = "",
                       waste_factor: Optional[Decimal] = None) -> SlabEstimate:
        """
        Rough slab count for a piece list: ceil(area × waste ÷ slab area).
        Utilization is the piece area over the area of the slabs bought.
        """
        self.validate_pieces(pieces)
        waste = to_decimal(waste_factor) if waste_factor is not None else self.default_waste_factor
        slab = get_slab_size(category)
        total_area = piece_area_total(pieces)

        count = math.ceil(total_area * waste / slab.area_sqm) if total_area > ZERO else 0
        utilization = safe_divide(total_area * HUNDRED, slab.area_sqm * count)

        return SlabEstimate(
            count=count,
            slab_length_mm=slab.length_mm,
            slab_width_mm=slab.width_mm,
            total_area_sqm=round_money(total_area),
            utilization_percent=round_percent(utilization),
        )


def diff_material_calculations(before: MaterialCalculation,
                               after: MaterialCalculation) -> dict:
    """
    Compare two material calculations, e.g. per-slab vs per-m² for the same quote.

    Returns the subtotal change and the per-piece cost changes for pieces whose
    cost moved. Pieces present on only one side are reported with a None cost
    on the other.
    """
    before_costs = {p.piece_id: p.total_cost for p in before.pieces}
    after_costs = {p.piece_id: p.total_cost for p in after.pieces}

    changed = []
    for piece_id in sorted(set(before_costs) | set(after_costs)):
        old = before_costs.get(piece_id)
        new = after_costs.get(piece_id)
        if old == new:
            continue
        changed.append({
            "piece_id": piece_id,
            "before": old,
            "after": new,
            "change": round_money(to_decimal(new) - to_decimal(old)),
        })

    change = after.subtotal - before.subtotal
    return {
        "strategy_before": before.strategy,
        "strategy_after": after.strategy,
        "subtotal_before": before.subtotal,
        "subtotal_after": after.subtotal,
        "subtotal_change": round_money(change),
        "subtotal_change_percent": round_percent(safe_divide(change * HUNDRED, before.subtotal)),
        "pieces": changed,
    }


def piece_area_total(pieces: Iterable[Piece]) -> Decimal:
    return sum_decimals(area_sq_metres(p.length_mm, p.width_mm) for p in pieces)
