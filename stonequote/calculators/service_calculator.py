"""
Fabrication services under per-organisation measurement units.

  Cutting:      LINEAR_METRE (perimeter), SQUARE_METRE, FIXED_PER_PIECE
  Polishing:    LINEAR_METRE (finished edges only), SQUARE_METRE, FIXED_PER_PIECE
  Installation: SQUARE_METRE, LINEAR_METRE (running length), FIXED_PER_PIECE, HOURLY
  Templating:   FIXED, PER_KILOMETRE, SQUARE_METRE
  Delivery:     FIXED_ZONE, PER_KILOMETRE, WEIGHT_BASED

A service with no configured rate produces no line. Every line carries its own
fabrication discount.
"""

import logging
from decimal import Decimal
from typing import Callable, Dict, Iterable, Optional, Sequence

from .base import BaseCalculator
from .edge_calculator import finished_edge_length_metres, perimeter_metres
from .join_estimator import HeuristicJoinEstimator, JoinEstimator
from .money import (
    ONE, ZERO, area_sq_metres, mm_to_metres, round_money, safe_divide,
    sum_decimals, to_decimal,
)
from .types import (
    CuttingUnit, DeliveryCalculation, DeliveryUnit, InstallationUnit, Piece,
    PolishingUnit, QuoteData, ServiceCalculation, ServiceItem, ServiceRate,
    ServiceType, ServiceUnitConfig, TemplatingCalculation, TemplatingUnit,
)

logger = logging.getLogger(__name__)

HOURS_PER_SQUARE_METRE = Decimal("0.5")  # 30 minutes installing per m²

UNIT_LABELS = {
    "LINEAR_METRE": "linear m",
    "SQUARE_METRE": "m²",
    "FIXED": "fixed",
    "FIXED_PER_PIECE": "piece",
    "HOURLY": "hours",
    "PER_KILOMETRE": "km",
    "FIXED_ZONE": "zone",
    "WEIGHT_BASED": "kg",
}


def unit_label(unit) -> str:
    return UNIT_LABELS.get(unit.value, unit.value)


# --- Per-piece quantity formulas ---

def _area(piece: Piece) -> Decimal:
    return area_sq_metres(piece.length_mm, piece.width_mm)


def _perimeter(piece: Piece) -> Decimal:
    return perimeter_metres(piece.length_mm, piece.width_mm)


def _finished_edges(piece: Piece) -> Decimal:
    return finished_edge_length_metres(piece.length_mm, piece.width_mm, piece.edges)


def _running_length(piece: Piece) -> Decimal:
    return mm_to_metres(piece.length_mm)


def _one(piece: Piece) -> Decimal:
    return ONE


def _install_hours(piece: Piece) -> Decimal:
    return _area(piece) * HOURS_PER_SQUARE_METRE


CUTTING_QUANTITY: Dict[CuttingUnit, Callable[[Piece], Decimal]] = {
    CuttingUnit.LINEAR_METRE: _perimeter,
    CuttingUnit.SQUARE_METRE: _area,
    CuttingUnit.FIXED_PER_PIECE: _one,
}

POLISHING_QUANTITY: Dict[PolishingUnit, Callable[[Piece], Decimal]] = {
    PolishingUnit.LINEAR_METRE: _finished_edges,
    PolishingUnit.SQUARE_METRE: _area,
    PolishingUnit.FIXED_PER_PIECE: _one,
}

INSTALLATION_QUANTITY: Dict[InstallationUnit, Callable[[Piece], Decimal]] = {
    InstallationUnit.SQUARE_METRE: _area,
    InstallationUnit.LINEAR_METRE: _running_length,
    InstallationUnit.FIXED_PER_PIECE: _one,
    InstallationUnit.HOURLY: _install_hours,
}


def has_waterfall_edge(piece: Piece) -> bool:
    return any(edge_id and "waterfall" in edge_id.lower() for edge_id in piece.edges.values())


class FlexibleServiceCalculator(BaseCalculator):

    def __init__(self, service_units: ServiceUnitConfig,
                 service_rates: Iterable[ServiceRate],
                 fabrication_discount_percent: Decimal = ZERO,
                 join_estimator: Optional[JoinEstimator] = None):
        self.service_units = service_units
        self.rates: Dict[ServiceType, ServiceRate] = {
            rate.service_type: rate for rate in service_rates
        }
        self.fabrication_discount_percent = to_decimal(fabrication_discount_percent)
        self.join_estimator = join_estimator or HeuristicJoinEstimator()

    def calculate(self, pieces: Sequence[Piece], include_joins: bool = True) -> ServiceCalculation:
        """
        Cutting, polishing, installation, waterfall ends and (optionally) joins.

        Templating and delivery depend on travel, not geometry, and are priced
        separately through calculate_templating / calculate_delivery.
        """
        self.validate_pieces(pieces)
        candidates = [
            self._per_piece_line(ServiceType.CUTTING, pieces,
                                 self.service_units.cutting, CUTTING_QUANTITY),
            self._per_piece_line(ServiceType.POLISHING, pieces,
                                 self.service_units.polishing, POLISHING_QUANTITY),
            self._per_piece_line(ServiceType.INSTALLATION, pieces,
                                 self.service_units.installation, INSTALLATION_QUANTITY),
            self._waterfall_line(pieces),
        ]
        if include_joins:
            candidates.append(self._join_line(pieces))

        items = tuple(item for item in candidates if item is not None)
        return ServiceCalculation(
            items=items,
            subtotal=round_money(sum_decimals(i.subtotal for i in items)),
            discount=round_money(sum_decimals(i.discount for i in items)),
            total=round_money(sum_decimals(i.total for i in items)),
        )

    def _rate_for(self, service_type: ServiceType) -> Optional[ServiceRate]:
        rate = self.rates.get(service_type)
        if rate is None:
            logger.debug("No %s rate configured, line omitted", service_type.value)
        return rate

    def _per_piece_line(self, service_type: ServiceType, pieces: Sequence[Piece],
                        unit, formulas) -> Optional[ServiceItem]:
        if not pieces:
            return None
        rate = self._rate_for(service_type)
        if rate is None:
            return None

        quantity_formula = formulas[unit]
        total_quantity = ZERO
        cost = ZERO
        for piece in pieces:
            quantity = quantity_formula(piece)
            total_quantity += quantity
            cost += quantity * self.thickness_rate(piece.thickness_mm, rate.rate_20mm, rate.rate_40mm)
        if total_quantity == ZERO:
            return None

        # quantity × effective_rate == cost, before the minimum charge
        effective_rate = safe_divide(cost, total_quantity, default=to_decimal(rate.rate_20mm))
        cost = self.apply_minimum_charge(cost, rate.minimum_charge)
        return self._make_item(service_type, rate.name, total_quantity,
                               unit_label(unit), effective_rate, cost)

    def _waterfall_line(self, pieces: Sequence[Piece]) -> Optional[ServiceItem]:
        count = sum(1 for piece in pieces if has_waterfall_edge(piece))
        if count == 0:
            return None
        rate = self._rate_for(ServiceType.WATERFALL_END)
        if rate is None:
            return None
        per_end = self.thickness_rate(average_thickness(pieces), rate.rate_20mm, rate.rate_40mm)
        cost = self.apply_minimum_charge(per_end * count, rate.minimum_charge)
        return self._make_item(ServiceType.WATERFALL_END, rate.name,
                               Decimal(count), "each", per_end, cost)

    def _join_line(self, pieces: Sequence[Piece]) -> Optional[ServiceItem]:
        join_length_mm = sum(self.join_estimator.estimate(piece).join_length_mm for piece in pieces)
        if join_length_mm == 0:
            return None
        rate = self._rate_for(ServiceType.JOIN)
        if rate is None:
            return None
        metres = mm_to_metres(join_length_mm)
        per_metre = self.thickness_rate(average_thickness(pieces), rate.rate_20mm, rate.rate_40mm)
        cost = self.apply_minimum_charge(metres * per_metre, rate.minimum_charge)
        return self._make_item(ServiceType.JOIN, "Join Seams", metres,
                               UNIT_LABELS["LINEAR_METRE"], per_metre, cost)

    # --- Travel-based services ---

    def calculate_templating(self, distance_km=None,
                             total_area_sqm=None) -> Optional[ServiceItem]:
        """None when no rate is configured or the measure the unit needs is missing."""
        rate = self._rate_for(ServiceType.TEMPLATING)
        if rate is None:
            return None
        unit = self.service_units.templating
        if unit == TemplatingUnit.PER_KILOMETRE:
            measure = distance_km
        elif unit == TemplatingUnit.SQUARE_METRE:
            measure = total_area_sqm
        else:
            measure = ONE
        if measure is None:
            return None
        quantity = to_decimal(measure)
        per_unit = to_decimal(rate.rate_20mm)
        cost = self.apply_minimum_charge(quantity * per_unit, rate.minimum_charge)
        return self._make_item(ServiceType.TEMPLATING, rate.name, quantity,
                               unit_label(unit), per_unit, cost)

    def calculate_delivery(self, distance_km=None, weight_kg=None,
                           zone: Optional[str] = None) -> Optional[ServiceItem]:
        """None when no rate is configured or the measure the unit needs is missing."""
        rate = self._rate_for(ServiceType.DELIVERY)
        if rate is None:
            return None
        unit = self.service_units.delivery
        label = unit_label(unit)
        if unit == DeliveryUnit.FIXED_ZONE:
            measure = ONE
            label = zone or label
        elif unit == DeliveryUnit.WEIGHT_BASED:
            measure = weight_kg
        else:
            measure = distance_km
        if measure is None:
            return None
        quantity = to_decimal(measure)
        per_unit = to_decimal(rate.rate_20mm)
        cost = self.apply_minimum_charge(quantity * per_unit, rate.minimum_charge)
        return self._make_item(ServiceType.DELIVERY, rate.name, quantity, label, per_unit, cost)

    def delivery_breakdown(self, quote: QuoteData) -> DeliveryCalculation:
        """
        Final cost precedence: override, then the computed cost when a rate is
        configured, then the cost stored on the quote, then zero.
        """
        requested = any(value is not None for value in (
            quote.delivery_address, quote.delivery_distance_km,
            quote.delivery_zone, quote.delivery_weight_kg,
        ))
        item = None
        if requested:
            item = self.calculate_delivery(
                quote.delivery_distance_km, quote.delivery_weight_kg, quote.delivery_zone)

        unit = self.service_units.delivery
        rate = to_decimal(item.rate) if item is not None else ZERO
        calculated = item.total if item is not None else round_money(ZERO)
        return DeliveryCalculation(
            address=quote.delivery_address,
            distance_km=quote.delivery_distance_km,
            zone=quote.delivery_zone,
            base_charge=round_money(rate if unit == DeliveryUnit.FIXED_ZONE else ZERO),
            rate_per_km=round_money(rate if unit == DeliveryUnit.PER_KILOMETRE else ZERO),
            calculated_cost=calculated,
            override_cost=quote.override_delivery_cost,
            final_cost=resolve_final_cost(
                quote.override_delivery_cost, item, quote.delivery_cost),
        )

    def templating_breakdown(self, quote: QuoteData, total_area_sqm=None) -> TemplatingCalculation:
        item = None
        if quote.templating_required:
            item = self.calculate_templating(quote.templating_distance_km, total_area_sqm)

        unit = self.service_units.templating
        rate = to_decimal(item.rate) if item is not None else ZERO
        stored = quote.templating_cost if quote.templating_required else None
        return TemplatingCalculation(
            required=quote.templating_required,
            distance_km=quote.templating_distance_km,
            base_charge=round_money(rate if unit == TemplatingUnit.FIXED else ZERO),
            rate_per_km=round_money(rate if unit == TemplatingUnit.PER_KILOMETRE else ZERO),
            calculated_cost=item.total if item is not None else round_money(ZERO),
            override_cost=quote.override_templating_cost,
            final_cost=resolve_final_cost(quote.override_templating_cost, item, stored),
        )

    def _make_item(self, service_type: ServiceType, name: str, quantity: Decimal,
                   unit: str, rate: Decimal, cost: Decimal) -> ServiceItem:
        subtotal, discount, total = self.apply_discount(cost, self.fabrication_discount_percent)
        return ServiceItem(
            service_type=service_type,
            name=name,
            quantity=round_money(quantity),
            unit=unit,
            rate=round_money(rate),
            subtotal=subtotal,
            discount=discount,
            total=total,
        )


def average_thickness(pieces: Sequence[Piece]) -> Decimal:
    return safe_divide(sum(p.thickness_mm for p in pieces), len(pieces))


def resolve_final_cost(override, item: Optional[ServiceItem], stored) -> Decimal:
    if override is not None:
        return round_money(override)
    if item is not None:
        return item.total
    if stored is not None:
        return round_money(stored)
    return round_money(ZERO)
