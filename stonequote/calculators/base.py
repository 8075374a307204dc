"""
Abstract base class for the component calculators.

Input: an immutable QuoteSnapshot (or its pieces) + PricingContext
Output: a frozen calculation result, never mutated afterwards
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Iterable, Optional

from ..errors import QuoteValidationError
from .money import ZERO, percent_of, round_money, to_decimal
from .types import Piece

logger = logging.getLogger(__name__)


class BaseCalculator(ABC):
    """All component calculators inherit from this."""

    @abstractmethod
    def calculate(self, *args, **kwargs):
        """Returns this component's frozen calculation result."""
        pass

    # --- Helper methods for all calculators ---

    def validate_pieces(self, pieces: Iterable[Piece]) -> None:
        """Reject non-positive dimensions before any arithmetic happens."""
        for piece in pieces:
            if piece.length_mm <= 0:
                raise QuoteValidationError(
                    f"Piece {piece.piece_id} has non-positive length {piece.length_mm}mm",
                    piece_id=piece.piece_id, field="length_mm",
                )
            if piece.width_mm <= 0:
                raise QuoteValidationError(
                    f"Piece {piece.piece_id} has non-positive width {piece.width_mm}mm",
                    piece_id=piece.piece_id, field="width_mm",
                )
            if piece.thickness_mm <= 0:
                raise QuoteValidationError(
                    f"Piece {piece.piece_id} has non-positive thickness {piece.thickness_mm}mm",
                    piece_id=piece.piece_id, field="thickness_mm",
                )

    def apply_discount(self, subtotal: Decimal, discount_percent) -> tuple:
        """
        Split a line into (subtotal, discount, total), each rounded to 2 dp.

        The discount is rounded before subtracting so subtotal - discount == total
        holds exactly on the rounded figures.
        """
        subtotal = round_money(subtotal)
        discount = round_money(percent_of(subtotal, discount_percent or ZERO))
        return subtotal, discount, subtotal - discount

    def apply_minimum_charge(self, cost: Decimal, minimum_charge: Optional[Decimal]) -> Decimal:
        """Charge at least the minimum. A zero or missing minimum never applies."""
        minimum = to_decimal(minimum_charge)
        if minimum > ZERO and cost < minimum:
            return minimum
        return cost

    def thickness_rate(self, thickness_mm: int, rate_20mm, rate_40mm) -> Decimal:
        """20mm and under bills at the 20mm rate; anything thicker at the 40mm rate."""
        return to_decimal(rate_20mm) if thickness_mm <= 20 else to_decimal(rate_40mm)

    @staticmethod
    def thickness_label(thickness_mm: int) -> str:
        return f"{thickness_mm}mm"
