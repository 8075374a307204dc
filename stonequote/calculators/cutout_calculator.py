"""
Cutout costing: quantities summed per cutout type across all pieces,
base rate × quantity, minimum charge per type, fabrication discount per line.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, Sequence

from ..errors import QuoteValidationError
from .base import BaseCalculator
from .money import ZERO, round_money, sum_decimals, to_decimal
from .types import CutoutCalculation, CutoutItem, CutoutType, Piece

logger = logging.getLogger(__name__)


class CutoutCalculator(BaseCalculator):

    def __init__(self, cutout_types: Iterable[CutoutType],
                 fabrication_discount_percent: Decimal = ZERO):
        self.cutout_types: Dict[str, CutoutType] = {
            cutout.cutout_type_id: cutout for cutout in cutout_types
        }
        self.fabrication_discount_percent = to_decimal(fabrication_discount_percent)

    def calculate(self, pieces: Sequence[Piece]) -> CutoutCalculation:
        quantities: Dict[str, int] = {}
        for piece in pieces:
            for selection in piece.cutouts:
                if selection.quantity <= 0:
                    raise QuoteValidationError(
                        f"Cutout {selection.cutout_type_id} on piece {piece.piece_id} "
                        f"has non-positive quantity {selection.quantity}",
                        piece_id=piece.piece_id, field="cutouts.quantity",
                    )
                if selection.cutout_type_id not in self.cutout_types:
                    logger.debug("Cutout type %s not active, not billed on %s",
                                 selection.cutout_type_id, piece.piece_id)
                    continue
                quantities[selection.cutout_type_id] = (
                    quantities.get(selection.cutout_type_id, 0) + selection.quantity
                )

        items = []
        for cutout_type_id, quantity in quantities.items():
            cutout = self.cutout_types[cutout_type_id]
            cost = self.apply_minimum_charge(
                to_decimal(cutout.base_rate) * quantity, cutout.minimum_charge)
            subtotal, discount, total = self.apply_discount(cost, self.fabrication_discount_percent)
            items.append(CutoutItem(
                cutout_type_id=cutout.cutout_type_id,
                cutout_type_name=cutout.name,
                category=cutout.category,
                quantity=quantity,
                unit_price=round_money(cutout.base_rate),
                subtotal=subtotal,
                discount=discount,
                total=total,
            ))
        items.sort(key=lambda item: (item.cutout_type_name, item.cutout_type_id))

        return CutoutCalculation(
            items=tuple(items),
            subtotal=round_money(sum_decimals(i.subtotal for i in items)),
            discount=round_money(sum_decimals(i.discount for i in items)),
            total=round_money(sum_decimals(i.total for i in items)),
        )
