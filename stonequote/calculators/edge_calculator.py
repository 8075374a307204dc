"""
Edge profile costing.

Every finished side of a piece is billed by the linear metre at a
thickness-tiered rate. Sides are grouped by (profile, thickness) so minimum
lengths and minimum charges apply to the group, the way a fabricator bills a
run of one profile.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .base import BaseCalculator
from .money import ZERO, mm_to_metres, round_money, safe_divide, sum_decimals, to_decimal
from .types import (
    EdgeCalculation, EdgeProfile, EdgeSide, EdgeTypeBreakdown, EdgeTypeId,
    Piece, PieceEdgeBreakdown, PieceEdgeCost,
)

logger = logging.getLogger(__name__)

# Which piece dimension each side runs along
EDGE_DIMENSION_MAP: Dict[EdgeSide, str] = {
    EdgeSide.TOP: "width_mm",
    EdgeSide.BOTTOM: "width_mm",
    EdgeSide.LEFT: "length_mm",
    EdgeSide.RIGHT: "length_mm",
}

# Threshold between the two thickness tiers, in mm (inclusive on the 20mm side)
THICKNESS_TIER_MM = 20


def side_length_mm(piece: Piece, side: EdgeSide) -> int:
    return getattr(piece, EDGE_DIMENSION_MAP[side])


class EdgeCalculator(BaseCalculator):

    def __init__(self, edge_profiles: Iterable[EdgeProfile],
                 fabrication_discount_percent: Decimal = ZERO):
        self.edge_profiles: Dict[str, EdgeProfile] = {
            profile.edge_type_id: profile for profile in edge_profiles
        }
        self.fabrication_discount_percent = to_decimal(fabrication_discount_percent)

    def calculate(self, pieces: Sequence[Piece]) -> EdgeCalculation:
        """Group every finished side by (profile, thickness) and cost each group."""
        self.validate_pieces(pieces)

        groups: Dict[Tuple[str, int], List[int]] = {}
        for piece in pieces:
            for side, profile in self._finished_sides(piece):
                key = (profile.edge_type_id, piece.thickness_mm)
                groups.setdefault(key, []).append(side_length_mm(piece, side))

        by_type = [
            self._calculate_group(self.edge_profiles[edge_type_id], thickness, lengths)
            for (edge_type_id, thickness), lengths in groups.items()
        ]
        by_type.sort(key=lambda b: (b.edge_type_name, b.edge_type_id))

        return EdgeCalculation(
            by_type=tuple(by_type),
            pieces=tuple(self.calculate_piece(piece) for piece in pieces),
            total_linear_metres=round_money(
                sum_decimals(mm_to_metres(sum(lengths)) for lengths in groups.values())
            ),
            subtotal=round_money(sum_decimals(b.subtotal for b in by_type)),
            discount=round_money(sum_decimals(b.discount for b in by_type)),
            total=round_money(sum_decimals(b.total for b in by_type)),
        )

    def calculate_piece(self, piece: Piece) -> PieceEdgeBreakdown:
        """Per-side costs for one piece, minimums applied to each side on its own."""
        edges = []
        subtotal = ZERO
        for side, profile in self._finished_sides(piece):
            length_mm = side_length_mm(piece, side)
            metres = mm_to_metres(length_mm)
            cost = self.apply_minimums(
                metres * self.select_rate(profile, piece.thickness_mm), metres, profile
            )
            subtotal += cost
            edges.append(PieceEdgeCost(
                side=side,
                edge_type_id=profile.edge_type_id,
                length_mm=length_mm,
                linear_metres=metres,
                cost=round_money(cost),
            ))
        return PieceEdgeBreakdown(
            piece_id=piece.piece_id, edges=tuple(edges), subtotal=round_money(subtotal),
        )

    def _finished_sides(self, piece: Piece):
        for side in EdgeSide:
            edge_type_id = piece.edge_id(side)
            if not edge_type_id:
                continue
            profile = self.edge_profiles.get(edge_type_id)
            if profile is None:
                logger.debug("Edge profile %s not active, side %s of piece %s not billed",
                             edge_type_id, side.value, piece.piece_id)
                continue
            yield side, profile

    def _calculate_group(self, profile: EdgeProfile, thickness_mm: int,
                         lengths_mm: List[int]) -> EdgeTypeBreakdown:
        metres = mm_to_metres(sum(lengths_mm))
        rate = self.select_rate(profile, thickness_mm)
        cost = self.apply_minimums(metres * rate, metres, profile)
        subtotal, discount, total = self.apply_discount(cost, self.fabrication_discount_percent)
        return EdgeTypeBreakdown(
            edge_type_id=profile.edge_type_id,
            edge_type_name=f"{profile.name} ({self.thickness_label(thickness_mm)})",
            thickness_mm=thickness_mm,
            linear_metres=round_money(metres),
            rate_per_metre=round_money(rate),
            subtotal=subtotal,
            discount=discount,
            total=total,
        )

    @staticmethod
    def select_rate(profile: EdgeProfile, thickness_mm: int) -> Decimal:
        """Tiered rate when that tier is configured, else the base rate."""
        if thickness_mm <= THICKNESS_TIER_MM and profile.rate_20mm is not None:
            return to_decimal(profile.rate_20mm)
        if thickness_mm > THICKNESS_TIER_MM and profile.rate_40mm is not None:
            return to_decimal(profile.rate_40mm)
        return to_decimal(profile.base_rate)

    def apply_minimums(self, cost: Decimal, metres: Decimal, profile: EdgeProfile) -> Decimal:
        """
        Pad a short run up to the minimum billable length at the run's own rate,
        then clamp to the minimum charge. Both can fire on the same run.
        """
        minimum_length = to_decimal(profile.minimum_length)
        if minimum_length > ZERO and ZERO < metres < minimum_length:
            cost = minimum_length * safe_divide(cost, metres)
        return self.apply_minimum_charge(cost, profile.minimum_charge)


# --- Edge utilities ---

def perimeter_metres(length_mm: int, width_mm: int) -> Decimal:
    return mm_to_metres(2 * (length_mm + width_mm))


def finished_edge_length_metres(length_mm: int, width_mm: int,
                                edges: Mapping[EdgeSide, Optional[str]]) -> Decimal:
    """Total length of the sides that carry a profile."""
    total = 0
    for side, edge_type_id in edges.items():
        if edge_type_id:
            total += width_mm if EDGE_DIMENSION_MAP[EdgeSide(side)] == "width_mm" else length_mm
    return mm_to_metres(total)


def referenced_edge_ids(pieces: Iterable[Piece]) -> List[EdgeTypeId]:
    """Every edge type id referenced by any side of any piece, in first-seen order."""
    seen = []
    for piece in pieces:
        for side in EdgeSide:
            edge_type_id = piece.edge_id(side)
            if edge_type_id and edge_type_id not in seen:
                seen.append(edge_type_id)
    return seen
