"""
Unit-block (multi-unit development) pricing.

POST /api/unit-blocks/calculate: price every unit's quote, then aggregate
into one project result with volume discounts and an optional phased schedule.
"""

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas
from ..calculators.types import UnitQuote, VolumeTier
from ..calculators.unit_block_calculator import (
    UnitBlockCalculator, build_phases, generate_phased_schedule,
)
from ..database import get_db
from ..dependencies import get_engine, http_error
from ..errors import PricingError
from ..pricing_engine import PricingEngine
from ..quote_loader import QuoteLoader

router = APIRouter(prefix="/unit-blocks", tags=["unit-blocks"])


def load_volume_tiers(db: Session):
    """Volume tiers from the table, or None so the calculator uses its defaults."""
    rows = db.query(models.VolumeTier).order_by(models.VolumeTier.min_square_metres).all()
    if not rows:
        return None
    return [
        VolumeTier(
            tier_id=r.id,
            name=r.name,
            min_square_metres=r.min_square_metres,
            max_square_metres=r.max_square_metres,
            discount_percent=r.discount_percent,
        )
        for r in rows
    ]


@router.post("/calculate", response_model=schemas.UnitBlockResponse)
def calculate_unit_block(
    request: schemas.UnitBlockRequest,
    db: Session = Depends(get_db),
    engine: PricingEngine = Depends(get_engine),
):
    loader = QuoteLoader(db)
    try:
        units = [
            UnitQuote(
                unit_id=unit.unit_id,
                unit_number=unit.unit_number,
                calculation=engine.calculate(unit.quote_id, loader, force=request.force),
            )
            for unit in request.units
        ]
        calculator = UnitBlockCalculator(load_volume_tiers(db))
        phases = None
        if request.phases:
            phases = build_phases([(p.name, p.unit_indices) for p in request.phases], units)
        result = calculator.calculate(request.project_id, units, request.project_type, phases)
    except PricingError as e:
        raise http_error(e) from e

    schedule = None
    if phases:
        schedule = generate_phased_schedule(phases, request.start_date or date.today())

    return schemas.UnitBlockResponse(
        calculation=result,
        comparison=UnitBlockCalculator.compare_pricing_models(result),
        consolidated_materials=UnitBlockCalculator.consolidated_materials(result),
        schedule=schedule,
    )
