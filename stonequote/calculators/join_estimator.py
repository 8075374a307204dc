"""
Join (seam) estimation for pieces longer than a slab.

The heuristic below is provisional until nesting results supply seam
positions. Callers depend only on the JoinEstimator interface.
"""

import logging
import math
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Iterable, NamedTuple, Optional, Tuple

from .base import BaseCalculator
from .money import ZERO, mm_to_metres, to_decimal
from .types import JoinCalculation, JoinStrategy, Piece, ServiceRate

logger = logging.getLogger(__name__)

STANDARD_SLAB_LENGTH_MM = 3200


class JoinEstimate(NamedTuple):
    """Geometry only, no money."""
    strategy: JoinStrategy
    join_count: int
    join_length_mm: int
    warnings: Tuple[str, ...] = ()


class JoinEstimator(ABC):
    """Decides how many seams a piece needs and how long they are."""

    @abstractmethod
    def estimate(self, piece: Piece) -> JoinEstimate:
        pass


class HeuristicJoinEstimator(JoinEstimator):
    """
    ceil(longest side / slab length) - 1 joins, each running across the
    shorter side of the piece.
    """

    def __init__(self, slab_length_mm: int = STANDARD_SLAB_LENGTH_MM):
        self.slab_length_mm = slab_length_mm

    def estimate(self, piece: Piece) -> JoinEstimate:
        longest = max(piece.length_mm, piece.width_mm)
        shortest = min(piece.length_mm, piece.width_mm)
        if longest <= self.slab_length_mm:
            return JoinEstimate(JoinStrategy.NONE, 0, 0)

        joins = math.ceil(longest / self.slab_length_mm) - 1
        warnings = []
        if joins > 1:
            strategy = JoinStrategy.MULTI_JOIN
            warnings.append(
                f"Piece needs {joins} joins; confirm seam positions with the customer"
            )
        elif piece.length_mm >= piece.width_mm:
            strategy = JoinStrategy.LENGTHWISE
        else:
            strategy = JoinStrategy.WIDTHWISE

        if shortest > self.slab_length_mm:
            warnings.append(
                f"Both dimensions exceed the {self.slab_length_mm}mm slab; "
                f"join estimate covers one direction only"
            )
        return JoinEstimate(strategy, joins, joins * shortest, tuple(warnings))


class JoinCalculator(BaseCalculator):
    """Prices the estimator's seams at the JOIN service rate, per piece."""

    def __init__(self, estimator: Optional[JoinEstimator] = None,
                 join_rate: Optional[ServiceRate] = None,
                 fabrication_discount_percent: Decimal = ZERO):
        self.estimator = estimator or HeuristicJoinEstimator()
        self.join_rate = join_rate
        self.fabrication_discount_percent = to_decimal(fabrication_discount_percent)

    def calculate(self, pieces: Iterable[Piece]) -> Tuple[JoinCalculation, ...]:
        """One record per piece that needs a join. Pieces that fit on a slab are left out."""
        pieces = list(pieces)
        self.validate_pieces(pieces)
        results = []
        for piece in pieces:
            estimate = self.estimator.estimate(piece)
            if estimate.join_count == 0:
                continue
            cost = ZERO
            if self.join_rate is not None:
                rate = self.thickness_rate(
                    piece.thickness_mm, self.join_rate.rate_20mm, self.join_rate.rate_40mm)
                cost = mm_to_metres(estimate.join_length_mm) * rate
            else:
                logger.debug("No JOIN service rate configured, join on %s priced at zero",
                             piece.piece_id)
            subtotal, discount, total = self.apply_discount(cost, self.fabrication_discount_percent)
            results.append(JoinCalculation(
                piece_id=piece.piece_id,
                fits_on_single_slab=False,
                strategy=estimate.strategy,
                join_count=estimate.join_count,
                total_join_length_mm=estimate.join_length_mm,
                subtotal=subtotal,
                discount=discount,
                total=total,
                warnings=estimate.warnings,
            ))
        return tuple(results)
