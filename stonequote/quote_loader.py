"""
Loads a quote and its pricing context from the database into an immutable
QuoteSnapshot. The engine never touches the session after this point.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from . import models
from .calculators.types import (
    AdjustmentType, CutoutSelection, CutoutType, EdgeProfile, EdgeSide,
    MaterialPricing, MaterialPricingBasis, Piece, PricingConfiguration,
    PricingContext, PricingRule, QuoteData, QuoteSnapshot, RuleScope,
    ServiceRate, ServiceType, ServiceUnitConfig,
)
from .config import settings
from .errors import PricingContextMissingError, QuoteNotFoundError, QuoteValidationError

logger = logging.getLogger(__name__)

# Keys seen in client_tiers.discount_matrix for the fabrication discount
FABRICATION_DISCOUNT_KEYS = ("fabrication_discount", "fabricationDiscount")


def _id(value) -> Optional[str]:
    return None if value is None else str(value)


def fabrication_discount_from_matrix(matrix) -> Decimal:
    if not isinstance(matrix, dict):
        return Decimal("0")
    for key in FABRICATION_DISCOUNT_KEYS:
        if matrix.get(key) is not None:
            return Decimal(str(matrix[key]))
    return Decimal("0")


class QuoteLoader:
    """Reads everything one calculation needs, in one pass."""

    def __init__(self, db: Session):
        self.db = db

    def load(self, quote_id) -> QuoteSnapshot:
        quote = self._get_quote(quote_id)
        pricing_settings = self.db.query(models.PricingSettings).filter(
            models.PricingSettings.organisation_id == quote.organisation_id
        ).first()
        if pricing_settings is None:
            raise PricingContextMissingError(quote.organisation_id)

        context = self._build_context(quote, pricing_settings)
        pricing = self._build_pricing()
        quote_data = self._build_quote_data(quote)
        self._check_references(quote_data)

        logger.debug("Loaded quote %s v%s: %d pieces", quote.id, quote.version,
                     len(quote_data.pieces))
        return QuoteSnapshot(quote=quote_data, context=context, pricing=pricing)

    def _get_quote(self, quote_id) -> models.Quote:
        try:
            key = int(quote_id)
        except (TypeError, ValueError):
            raise QuoteNotFoundError(quote_id) from None
        quote = self.db.query(models.Quote).filter(models.Quote.id == key).first()
        if quote is None:
            raise QuoteNotFoundError(quote_id)
        return quote

    def _build_context(self, quote: models.Quote,
                       row: models.PricingSettings) -> PricingContext:
        customer = quote.customer
        tier = customer.client_tier if customer is not None else None
        price_book_id = quote.price_book_id
        if price_book_id is None and customer is not None:
            price_book_id = customer.default_price_book_id

        return PricingContext(
            organisation_id=row.organisation_id,
            material_pricing_basis=MaterialPricingBasis(row.material_pricing_basis),
            currency=row.currency or "AUD",
            tax_rate=row.tax_rate if row.tax_rate is not None else Decimal("0"),
            waste_factor=(row.waste_factor if row.waste_factor is not None
                          else Decimal(str(settings.DEFAULT_WASTE_FACTOR))),
            client_type_id=_id(customer.client_type_id) if customer else None,
            client_tier_id=_id(customer.client_tier_id) if customer else None,
            customer_id=_id(customer.id) if customer else None,
            price_book_id=_id(price_book_id),
            fabrication_discount_percent=fabrication_discount_from_matrix(
                tier.discount_matrix if tier is not None else None),
            service_units=ServiceUnitConfig(
                cutting=row.cutting_unit,
                polishing=row.polishing_unit,
                installation=row.installation_unit,
                templating=row.templating_unit,
                delivery=row.delivery_unit,
            ),
        )

    def _build_pricing(self) -> PricingConfiguration:
        edges = self.db.query(models.EdgeType).filter(models.EdgeType.is_active == True).all()  # noqa: E712
        cutouts = self.db.query(models.CutoutType).filter(models.CutoutType.is_active == True).all()  # noqa: E712
        rates = self.db.query(models.ServiceRate).filter(models.ServiceRate.is_active == True).all()  # noqa: E712
        rules = self.db.query(models.PricingRule).filter(models.PricingRule.is_active == True).all()  # noqa: E712

        return PricingConfiguration(
            edge_profiles=tuple(
                EdgeProfile(
                    edge_type_id=e.id, name=e.name, base_rate=e.base_rate,
                    rate_20mm=e.rate_20mm, rate_40mm=e.rate_40mm,
                    minimum_charge=e.minimum_charge, minimum_length=e.minimum_length,
                )
                for e in edges
            ),
            cutout_types=tuple(
                CutoutType(
                    cutout_type_id=c.id, name=c.name, category=c.category or "",
                    base_rate=c.base_rate, minimum_charge=c.minimum_charge,
                )
                for c in cutouts
            ),
            service_rates=tuple(
                ServiceRate(
                    service_type=ServiceType(r.service_type), name=r.name,
                    rate_20mm=r.rate_20mm, rate_40mm=r.rate_40mm,
                    minimum_charge=r.minimum_charge,
                )
                for r in rates
            ),
            pricing_rules=tuple(
                PricingRule(
                    rule_id=str(r.id), name=r.name, priority=r.priority or 0,
                    client_type_id=_id(r.client_type_id),
                    client_tier_id=_id(r.client_tier_id),
                    customer_id=_id(r.customer_id),
                    min_quote_value=r.min_quote_value, max_quote_value=r.max_quote_value,
                    thickness_mm=r.thickness_mm,
                    applies_to=RuleScope(r.applies_to or "ALL"),
                    adjustment_type=AdjustmentType(r.adjustment_type),
                    adjustment_value=r.adjustment_value,
                )
                for r in rules
            ),
        )

    def _build_quote_data(self, quote: models.Quote) -> QuoteData:
        pieces = []
        category = ""
        for room in quote.rooms:
            for row in room.pieces:
                if row.material_id is not None and row.material is None:
                    raise QuoteValidationError(
                        f"Piece {row.id} references unknown material {row.material_id}",
                        piece_id=str(row.id), field="material_id",
                    )
                material = None
                if row.material is not None:
                    material = MaterialPricing(
                        material_id=str(row.material.id),
                        name=row.material.name,
                        category=row.material.category or "",
                        price_per_sqm=row.material.price_per_sqm or Decimal("0"),
                        price_per_slab=row.material.price_per_slab,
                    )
                    category = category or material.category
                pieces.append(Piece(
                    piece_id=str(row.id),
                    name=row.name or "",
                    room=room.name,
                    length_mm=row.length_mm,
                    width_mm=row.width_mm,
                    thickness_mm=row.thickness_mm if row.thickness_mm is not None else 20,
                    edges={
                        EdgeSide.TOP: row.edge_top,
                        EdgeSide.BOTTOM: row.edge_bottom,
                        EdgeSide.LEFT: row.edge_left,
                        EdgeSide.RIGHT: row.edge_right,
                    },
                    cutouts=tuple(
                        CutoutSelection(cutout_type_id=c["cutout_type_id"],
                                        quantity=c.get("quantity", 1))
                        for c in (row.cutouts or [])
                    ),
                    material=material,
                    override_material_cost=row.override_material_cost,
                ))

        latest = self.db.query(models.SlabOptimization).filter(
            models.SlabOptimization.quote_id == quote.id
        ).order_by(models.SlabOptimization.created_at.desc(),
                   models.SlabOptimization.id.desc()).first()

        return QuoteData(
            quote_id=str(quote.id),
            quote_number=quote.quote_number,
            version=quote.version or 1,
            tax_rate=quote.tax_rate,
            pieces=tuple(pieces),
            slab_count=latest.total_slabs if latest is not None else None,
            material_category=category,
            delivery_address=quote.delivery_address,
            delivery_distance_km=quote.delivery_distance_km,
            delivery_zone=quote.delivery_zone,
            delivery_weight_kg=quote.delivery_weight_kg,
            delivery_cost=quote.delivery_cost,
            override_delivery_cost=quote.override_delivery_cost,
            templating_required=bool(quote.templating_required),
            templating_distance_km=quote.templating_distance_km,
            templating_cost=quote.templating_cost,
            override_templating_cost=quote.override_templating_cost,
        )

    def _check_references(self, quote: QuoteData) -> None:
        """
        Every edge and cutout id a piece references must exist in its table.
        Ids that exist but are inactive pass; the calculators leave them out.
        """
        known_edges = {row[0] for row in self.db.query(models.EdgeType.id).all()}
        known_cutouts = {row[0] for row in self.db.query(models.CutoutType.id).all()}
        for piece in quote.pieces:
            for side in EdgeSide:
                edge_type_id = piece.edge_id(side)
                if edge_type_id and edge_type_id not in known_edges:
                    raise QuoteValidationError(
                        f"Piece {piece.piece_id} references unknown edge type {edge_type_id!r}",
                        piece_id=piece.piece_id, field=f"edge_{side.value.lower()}",
                    )
            for selection in piece.cutouts:
                if selection.cutout_type_id not in known_cutouts:
                    raise QuoteValidationError(
                        f"Piece {piece.piece_id} references unknown cutout type "
                        f"{selection.cutout_type_id!r}",
                        piece_id=piece.piece_id, field="cutouts",
                    )
