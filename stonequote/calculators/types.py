"""
Shared types for every calculator.

Inputs and results are frozen pydantic models. A QuoteCalculationResult is a
value: consumers (PDF rendering, UI summaries, manufacturing export) read it,
never mutate it. Collections inside results are tuples for the same reason.

Every configuration axis is a closed str enum, and each service type gets its
own unit enum so an impossible combination (hourly delivery, per-km cutting)
cannot be constructed.
"""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, NewType, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Identifier kinds ---

QuoteId = NewType("QuoteId", str)
PieceId = NewType("PieceId", str)
MaterialId = NewType("MaterialId", str)
EdgeTypeId = NewType("EdgeTypeId", str)
CutoutTypeId = NewType("CutoutTypeId", str)


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Enums ---

class MaterialPricingBasis(str, enum.Enum):
    PER_SLAB = "PER_SLAB"
    PER_SQUARE_METRE = "PER_SQUARE_METRE"


class EdgeSide(str, enum.Enum):
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"


class ServiceType(str, enum.Enum):
    CUTTING = "CUTTING"
    POLISHING = "POLISHING"
    INSTALLATION = "INSTALLATION"
    WATERFALL_END = "WATERFALL_END"
    JOIN = "JOIN"
    TEMPLATING = "TEMPLATING"
    DELIVERY = "DELIVERY"


class CuttingUnit(str, enum.Enum):
    LINEAR_METRE = "LINEAR_METRE"
    SQUARE_METRE = "SQUARE_METRE"
    FIXED_PER_PIECE = "FIXED_PER_PIECE"


class PolishingUnit(str, enum.Enum):
    LINEAR_METRE = "LINEAR_METRE"
    SQUARE_METRE = "SQUARE_METRE"
    FIXED_PER_PIECE = "FIXED_PER_PIECE"


class InstallationUnit(str, enum.Enum):
    SQUARE_METRE = "SQUARE_METRE"
    LINEAR_METRE = "LINEAR_METRE"
    FIXED_PER_PIECE = "FIXED_PER_PIECE"
    HOURLY = "HOURLY"


class TemplatingUnit(str, enum.Enum):
    FIXED = "FIXED"
    PER_KILOMETRE = "PER_KILOMETRE"
    SQUARE_METRE = "SQUARE_METRE"


class DeliveryUnit(str, enum.Enum):
    FIXED_ZONE = "FIXED_ZONE"
    PER_KILOMETRE = "PER_KILOMETRE"
    WEIGHT_BASED = "WEIGHT_BASED"


class AdjustmentType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class RuleScope(str, enum.Enum):
    ALL = "ALL"
    MATERIALS = "MATERIALS"
    EDGES = "EDGES"
    CUTOUTS = "CUTOUTS"
    SERVICES = "SERVICES"
    FABRICATION = "FABRICATION"  # edges + cutouts + services


class JoinStrategy(str, enum.Enum):
    NONE = "NONE"
    LENGTHWISE = "LENGTHWISE"
    WIDTHWISE = "WIDTHWISE"
    MULTI_JOIN = "MULTI_JOIN"


class ProjectType(str, enum.Enum):
    SINGLE_DWELLING = "SINGLE_DWELLING"
    UNIT_BLOCK = "UNIT_BLOCK"
    COMMERCIAL = "COMMERCIAL"


class VolumeDiscountScope(str, enum.Enum):
    MATERIAL = "MATERIAL"
    FABRICATION = "FABRICATION"


class PricingModel(str, enum.Enum):
    PROJECT = "PROJECT"
    INDIVIDUAL = "INDIVIDUAL"


# ============================================================
# Inputs
# ============================================================

class MaterialPricing(FrozenModel):
    material_id: MaterialId
    name: str = ""
    category: str = ""
    price_per_sqm: Decimal = Decimal("0")
    price_per_slab: Optional[Decimal] = None


class CutoutSelection(FrozenModel):
    cutout_type_id: CutoutTypeId
    quantity: int = 1


class Piece(FrozenModel):
    """One fabricated item. Dimensions in whole millimetres."""
    piece_id: PieceId
    name: str = ""
    room: str = ""
    length_mm: int
    width_mm: int
    thickness_mm: int = 20
    edges: Dict[EdgeSide, Optional[EdgeTypeId]] = {}
    cutouts: Tuple[CutoutSelection, ...] = ()
    material: Optional[MaterialPricing] = None
    override_material_cost: Optional[Decimal] = None

    def edge_id(self, side: EdgeSide) -> Optional[EdgeTypeId]:
        return self.edges.get(side)


class EdgeProfile(FrozenModel):
    edge_type_id: EdgeTypeId
    name: str
    base_rate: Decimal
    rate_20mm: Optional[Decimal] = None   # thickness <= 20mm
    rate_40mm: Optional[Decimal] = None   # thickness > 20mm
    minimum_charge: Optional[Decimal] = None
    minimum_length: Optional[Decimal] = None  # metres


class CutoutType(FrozenModel):
    cutout_type_id: CutoutTypeId
    name: str
    category: str = ""
    base_rate: Decimal
    minimum_charge: Optional[Decimal] = None

    @field_validator("base_rate")
    @classmethod
    def _rate_not_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("cutout base_rate must be non-negative")
        return value


class ServiceRate(FrozenModel):
    service_type: ServiceType
    name: str
    rate_20mm: Decimal
    rate_40mm: Decimal
    minimum_charge: Optional[Decimal] = None


class ServiceUnitConfig(FrozenModel):
    cutting: CuttingUnit = CuttingUnit.LINEAR_METRE
    polishing: PolishingUnit = PolishingUnit.LINEAR_METRE
    installation: InstallationUnit = InstallationUnit.SQUARE_METRE
    templating: TemplatingUnit = TemplatingUnit.PER_KILOMETRE
    delivery: DeliveryUnit = DeliveryUnit.PER_KILOMETRE


class PricingContext(FrozenModel):
    """Per-organisation pricing configuration, loaded once per calculation."""
    organisation_id: str
    material_pricing_basis: MaterialPricingBasis
    currency: str = "AUD"
    tax_rate: Decimal = Decimal("10")  # percent
    waste_factor: Decimal = Decimal("1.15")
    client_type_id: Optional[str] = None
    client_tier_id: Optional[str] = None
    customer_id: Optional[str] = None
    price_book_id: Optional[str] = None
    fabrication_discount_percent: Decimal = Decimal("0")
    service_units: ServiceUnitConfig = ServiceUnitConfig()


class PricingRule(FrozenModel):
    rule_id: str
    name: str
    priority: int = 0
    client_type_id: Optional[str] = None
    client_tier_id: Optional[str] = None
    customer_id: Optional[str] = None
    min_quote_value: Optional[Decimal] = None
    max_quote_value: Optional[Decimal] = None
    thickness_mm: Optional[int] = None
    applies_to: RuleScope = RuleScope.ALL
    adjustment_type: AdjustmentType
    adjustment_value: Decimal
    is_active: bool = True


class QuoteData(FrozenModel):
    quote_id: QuoteId
    quote_number: str = ""
    version: int = 1
    tax_rate: Optional[Decimal] = None  # percent; falls back to the context's rate
    pieces: Tuple[Piece, ...] = ()
    slab_count: Optional[int] = None    # from the latest slab optimization, if any
    material_category: str = ""
    delivery_address: Optional[str] = None
    delivery_distance_km: Optional[Decimal] = None
    delivery_zone: Optional[str] = None
    delivery_weight_kg: Optional[Decimal] = None
    delivery_cost: Optional[Decimal] = None
    override_delivery_cost: Optional[Decimal] = None
    templating_required: bool = False
    templating_distance_km: Optional[Decimal] = None
    templating_cost: Optional[Decimal] = None
    override_templating_cost: Optional[Decimal] = None


class PricingConfiguration(FrozenModel):
    """Active lookup tables. Read-only for the duration of a calculation."""
    edge_profiles: Tuple[EdgeProfile, ...] = ()
    cutout_types: Tuple[CutoutType, ...] = ()
    service_rates: Tuple[ServiceRate, ...] = ()
    pricing_rules: Tuple[PricingRule, ...] = ()


class QuoteSnapshot(FrozenModel):
    quote: QuoteData
    context: PricingContext
    pricing: PricingConfiguration = PricingConfiguration()


# ============================================================
# Results
# ============================================================

class PieceMaterialCost(FrozenModel):
    piece_id: PieceId
    area_sqm: Decimal
    strategy: MaterialPricingBasis
    unit_cost: Decimal
    total_cost: Decimal
    is_override: bool


class MaterialCalculation(FrozenModel):
    strategy: MaterialPricingBasis
    pieces: Tuple[PieceMaterialCost, ...]
    slab_count: int
    total_area_sqm: Decimal
    # unrounded, for summing across quotes; not serialized
    exact_area_sqm: Optional[Decimal] = Field(default=None, exclude=True)
    unit_cost: Decimal
    waste_factor: Decimal
    subtotal: Decimal
    discount: Decimal
    total: Decimal


class SlabEstimate(FrozenModel):
    count: int
    slab_length_mm: int
    slab_width_mm: int
    total_area_sqm: Decimal
    utilization_percent: Decimal


class EdgeTypeBreakdown(FrozenModel):
    edge_type_id: EdgeTypeId
    edge_type_name: str
    thickness_mm: int
    linear_metres: Decimal
    rate_per_metre: Decimal
    subtotal: Decimal
    discount: Decimal
    total: Decimal


class PieceEdgeCost(FrozenModel):
    side: EdgeSide
    edge_type_id: EdgeTypeId
    length_mm: int
    linear_metres: Decimal
    cost: Decimal


class PieceEdgeBreakdown(FrozenModel):
    piece_id: PieceId
    edges: Tuple[PieceEdgeCost, ...]
    subtotal: Decimal


class EdgeCalculation(FrozenModel):
    by_type: Tuple[EdgeTypeBreakdown, ...]
    pieces: Tuple[PieceEdgeBreakdown, ...]
    total_linear_metres: Decimal
    subtotal: Decimal
    discount: Decimal
    total: Decimal


class CutoutItem(FrozenModel):
    cutout_type_id: CutoutTypeId
    cutout_type_name: str
    category: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    discount: Decimal
    total: Decimal


class CutoutCalculation(FrozenModel):
    items: Tuple[CutoutItem, ...]
    subtotal: Decimal
    discount: Decimal
    total: Decimal


class ServiceItem(FrozenModel):
    service_type: ServiceType
    name: str
    quantity: Decimal
    unit: str
    rate: Decimal
    subtotal: Decimal
    discount: Decimal
    total: Decimal


class ServiceCalculation(FrozenModel):
    items: Tuple[ServiceItem, ...]
    subtotal: Decimal
    discount: Decimal
    total: Decimal


class JoinCalculation(FrozenModel):
    piece_id: PieceId
    fits_on_single_slab: bool
    strategy: JoinStrategy
    join_count: int
    total_join_length_mm: int
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    warnings: Tuple[str, ...] = ()


class DeliveryCalculation(FrozenModel):
    address: Optional[str]
    distance_km: Optional[Decimal]
    zone: Optional[str]
    base_charge: Decimal
    rate_per_km: Decimal
    calculated_cost: Decimal
    override_cost: Optional[Decimal]
    final_cost: Decimal


class TemplatingCalculation(FrozenModel):
    required: bool
    distance_km: Optional[Decimal]
    base_charge: Decimal
    rate_per_km: Decimal
    calculated_cost: Decimal
    override_cost: Optional[Decimal]
    final_cost: Decimal


class AppliedPricingRule(FrozenModel):
    rule_id: str
    rule_name: str
    priority: int
    discount_type: AdjustmentType
    discount_value: Decimal
    applies_to: RuleScope
    amount: Decimal  # this rule's contribution, before the subtotal cap


class QuoteCalculationResult(FrozenModel):
    quote_id: QuoteId
    version: int
    materials: MaterialCalculation
    edges: EdgeCalculation
    cutouts: CutoutCalculation
    services: ServiceCalculation
    delivery: DeliveryCalculation
    templating: TemplatingCalculation
    joins: Tuple[JoinCalculation, ...]
    applied_rules: Tuple[AppliedPricingRule, ...]
    subtotal: Decimal
    discount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    currency: str
    calculated_at: datetime
    pricing_context: PricingContext

    def monetary_fields(self) -> dict:
        """Everything except the timestamp. Identical across recomputations."""
        return self.model_dump(mode="json", exclude={"calculated_at"})


# --- Unit blocks ---

class VolumeTier(FrozenModel):
    tier_id: str
    name: str
    min_square_metres: Decimal
    max_square_metres: Optional[Decimal] = None  # None = unbounded top tier
    discount_percent: Decimal

    def contains(self, area_sqm: Decimal) -> bool:
        if area_sqm < self.min_square_metres:
            return False
        return self.max_square_metres is None or area_sqm < self.max_square_metres


class VolumeDiscount(FrozenModel):
    tier_id: str
    applies_to: VolumeDiscountScope
    discount_percent: Decimal
    amount: Decimal


class UnitQuote(FrozenModel):
    unit_id: str
    unit_number: str
    calculation: QuoteCalculationResult


class UnitCalculation(FrozenModel):
    unit_id: str
    unit_number: str
    quote_id: QuoteId
    area_sqm: Decimal
    subtotal: Decimal


class ProjectPhase(FrozenModel):
    phase_id: str
    name: str
    unit_ids: Tuple[str, ...]


class PhaseSchedule(FrozenModel):
    phase_id: str
    phase_name: str
    unit_count: int
    unit_ids: Tuple[str, ...]
    start_date: date
    end_date: date
    estimated_days: int


class PhasedSchedule(FrozenModel):
    phases: Tuple[PhaseSchedule, ...]
    total_duration_days: int
    completion_date: Optional[date]


class UnitBlockAggregate(FrozenModel):
    total_area_sqm: Decimal
    total_slabs: int
    subtotal: Decimal
    volume_discount_total: Decimal
    grand_total: Decimal


class UnitBlockCalculation(FrozenModel):
    project_id: str
    project_type: ProjectType
    units: Tuple[UnitCalculation, ...]
    volume_tier: VolumeTier
    volume_discounts: Tuple[VolumeDiscount, ...]
    phases: Optional[Tuple[ProjectPhase, ...]] = None
    aggregate: UnitBlockAggregate


class PricingComparison(FrozenModel):
    individual_total: Decimal
    project_total: Decimal
    savings: Decimal
    savings_percent: Decimal
    recommended: PricingModel


class ConsolidatedMaterials(FrozenModel):
    total_slabs: int
    estimated_savings: Decimal
    recommendation: str
