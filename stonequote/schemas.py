from pydantic import BaseModel
from typing import Optional, List
from datetime import date
from decimal import Decimal

from .calculators.types import (
    ConsolidatedMaterials, PhasedSchedule, PricingComparison, ProjectType,
    UnitBlockCalculation,
)


# --- Pieces ---

class CutoutSelectionIn(BaseModel):
    cutout_type_id: str
    quantity: int = 1


class PieceUpdate(BaseModel):
    """Partial edit of a piece. Unset fields are left alone."""
    name: Optional[str] = None
    length_mm: Optional[int] = None
    width_mm: Optional[int] = None
    thickness_mm: Optional[int] = None
    edge_top: Optional[str] = None
    edge_bottom: Optional[str] = None
    edge_left: Optional[str] = None
    edge_right: Optional[str] = None
    cutouts: Optional[List[CutoutSelectionIn]] = None
    material_id: Optional[int] = None
    override_material_cost: Optional[Decimal] = None


class Piece(BaseModel):
    id: int
    room_id: int
    name: str
    length_mm: int
    width_mm: int
    thickness_mm: int
    edge_top: Optional[str] = None
    edge_bottom: Optional[str] = None
    edge_left: Optional[str] = None
    edge_right: Optional[str] = None
    cutouts: List[CutoutSelectionIn] = []
    material_id: Optional[int] = None
    override_material_cost: Optional[Decimal] = None
    class Config:
        from_attributes = True


# --- Unit blocks ---

class UnitIn(BaseModel):
    unit_id: str
    unit_number: str
    quote_id: int


class PhaseIn(BaseModel):
    name: str
    unit_indices: List[int]  # positions in UnitBlockRequest.units


class UnitBlockRequest(BaseModel):
    project_id: str
    project_type: ProjectType = ProjectType.UNIT_BLOCK
    units: List[UnitIn]
    phases: Optional[List[PhaseIn]] = None
    start_date: Optional[date] = None
    force: bool = False


class UnitBlockResponse(BaseModel):
    calculation: UnitBlockCalculation
    comparison: PricingComparison
    consolidated_materials: ConsolidatedMaterials
    schedule: Optional[PhasedSchedule] = None


# --- Pricing tables ---

class EdgeType(BaseModel):
    id: str
    name: str
    base_rate: Decimal
    rate_20mm: Optional[Decimal] = None
    rate_40mm: Optional[Decimal] = None
    minimum_charge: Optional[Decimal] = None
    minimum_length: Optional[Decimal] = None
    is_active: bool
    class Config:
        from_attributes = True


class CutoutType(BaseModel):
    id: str
    name: str
    category: Optional[str] = None
    base_rate: Decimal
    minimum_charge: Optional[Decimal] = None
    is_active: bool
    class Config:
        from_attributes = True


class ServiceRate(BaseModel):
    id: int
    service_type: str
    name: str
    rate_20mm: Decimal
    rate_40mm: Decimal
    minimum_charge: Optional[Decimal] = None
    is_active: bool
    class Config:
        from_attributes = True


class VolumeTier(BaseModel):
    id: str
    name: str
    min_square_metres: Decimal
    max_square_metres: Optional[Decimal] = None
    discount_percent: Decimal
    class Config:
        from_attributes = True
