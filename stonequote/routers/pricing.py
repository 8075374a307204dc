from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from decimal import Decimal
from .. import models, schemas
from ..calculators.unit_block_calculator import DEFAULT_VOLUME_TIERS
from ..database import get_db

router = APIRouter(prefix="/pricing", tags=["pricing"])

# Default edge profiles, per linear metre
# Pencil Round carries zero tier rates, so it prices at 0 for every thickness
DEFAULT_EDGE_TYPES = {
    "pencil_round": {"name": "Pencil Round", "base_rate": Decimal("45"), "rate_20mm": Decimal("0"),
                     "rate_40mm": Decimal("0"), "sort_order": 1},
    "bullnose": {"name": "Bullnose", "base_rate": Decimal("55"), "rate_20mm": Decimal("10"),
                 "rate_40mm": Decimal("10"), "sort_order": 2},
    "ogee": {"name": "Ogee", "base_rate": Decimal("65"), "rate_20mm": Decimal("20"),
             "rate_40mm": Decimal("25"), "sort_order": 3},
    "beveled": {"name": "Beveled", "base_rate": Decimal("50"), "rate_20mm": Decimal("5"),
                "rate_40mm": Decimal("5"), "sort_order": 4},
    "curved_finished": {"name": "Curved Finished Edge", "base_rate": Decimal("300"),
                        "rate_20mm": Decimal("255"), "rate_40mm": Decimal("535"),
                        "minimum_charge": Decimal("300"), "minimum_length": Decimal("1.0"),
                        "sort_order": 5},
    "waterfall": {"name": "Waterfall", "base_rate": Decimal("85"), "rate_20mm": Decimal("75"),
                  "rate_40mm": Decimal("75"), "sort_order": 6},
}

# Default cutouts, per each
DEFAULT_CUTOUT_TYPES = {
    "hotplate": {"name": "Hotplate", "category": "cooktop", "base_rate": Decimal("65"), "sort_order": 1},
    "gpo": {"name": "GPO", "category": "electrical", "base_rate": Decimal("65"), "sort_order": 2},
    "tap_hole": {"name": "Tap Hole", "category": "plumbing", "base_rate": Decimal("65"), "sort_order": 3},
    "drop_in_sink": {"name": "Drop-in Sink", "category": "sink", "base_rate": Decimal("65"), "sort_order": 4},
    "undermount_sink": {"name": "Undermount Sink", "category": "sink", "base_rate": Decimal("300"),
                        "sort_order": 5},
    "flush_cooktop": {"name": "Flush Mount Cooktop", "category": "cooktop", "base_rate": Decimal("450"),
                      "sort_order": 6},
    "basin": {"name": "Basin", "category": "sink", "base_rate": Decimal("65"), "sort_order": 7},
    "drainer_groove": {"name": "Drainer Groove", "category": "sink", "base_rate": Decimal("150"),
                       "sort_order": 8},
    "other": {"name": "Other", "category": "other", "base_rate": Decimal("65"), "sort_order": 9},
}

# Default service rates: rate at ≤20mm, rate at >20mm, minimum charge
DEFAULT_SERVICE_RATES = {
    "CUTTING": {"name": "Cutting", "rate_20mm": Decimal("17.50"), "rate_40mm": Decimal("45.00"),
                "minimum_charge": Decimal("50")},
    "POLISHING": {"name": "Polishing", "rate_20mm": Decimal("45"), "rate_40mm": Decimal("115"),
                  "minimum_charge": Decimal("50")},
    "INSTALLATION": {"name": "Installation", "rate_20mm": Decimal("140"), "rate_40mm": Decimal("170"),
                     "minimum_charge": Decimal("200")},
    "WATERFALL_END": {"name": "Waterfall End", "rate_20mm": Decimal("300"), "rate_40mm": Decimal("650"),
                      "minimum_charge": Decimal("300")},
    "TEMPLATING": {"name": "Templating", "rate_20mm": Decimal("180"), "rate_40mm": Decimal("180"),
                   "minimum_charge": Decimal("180")},
    "DELIVERY": {"name": "Delivery", "rate_20mm": Decimal("150"), "rate_40mm": Decimal("150"),
                 "minimum_charge": Decimal("100")},
}

DEFAULT_ORGANISATION = "default"


def seed_defaults(db: Session) -> int:
    """Insert every default row that is not already present. Returns the count added."""
    seeded = 0
    for edge_id, data in DEFAULT_EDGE_TYPES.items():
        if not db.get(models.EdgeType, edge_id):
            db.add(models.EdgeType(id=edge_id, **data))
            seeded += 1
    for cutout_id, data in DEFAULT_CUTOUT_TYPES.items():
        if not db.get(models.CutoutType, cutout_id):
            db.add(models.CutoutType(id=cutout_id, **data))
            seeded += 1
    for service_type, data in DEFAULT_SERVICE_RATES.items():
        existing = db.query(models.ServiceRate).filter(
            models.ServiceRate.service_type == service_type
        ).first()
        if not existing:
            db.add(models.ServiceRate(service_type=service_type, **data))
            seeded += 1
    for tier in DEFAULT_VOLUME_TIERS:
        if not db.get(models.VolumeTier, tier.tier_id):
            db.add(models.VolumeTier(
                id=tier.tier_id, name=tier.name,
                min_square_metres=tier.min_square_metres,
                max_square_metres=tier.max_square_metres,
                discount_percent=tier.discount_percent,
            ))
            seeded += 1
    existing = db.query(models.PricingSettings).filter(
        models.PricingSettings.organisation_id == DEFAULT_ORGANISATION
    ).first()
    if not existing:
        db.add(models.PricingSettings(organisation_id=DEFAULT_ORGANISATION))
        seeded += 1
    db.commit()
    return seeded


@router.get("/seed")
def seed_pricing(db: Session = Depends(get_db)):
    """Seed default pricing tables. Safe to run multiple times, skips existing rows."""
    return {"ok": True, "seeded": seed_defaults(db)}


@router.get("/edge-types", response_model=List[schemas.EdgeType])
def list_edge_types(db: Session = Depends(get_db)):
    return db.query(models.EdgeType).order_by(models.EdgeType.sort_order).all()


@router.get("/cutout-types", response_model=List[schemas.CutoutType])
def list_cutout_types(db: Session = Depends(get_db)):
    return db.query(models.CutoutType).order_by(models.CutoutType.sort_order).all()


@router.get("/service-rates", response_model=List[schemas.ServiceRate])
def list_service_rates(db: Session = Depends(get_db)):
    return db.query(models.ServiceRate).order_by(models.ServiceRate.service_type).all()


@router.get("/volume-tiers", response_model=List[schemas.VolumeTier])
def list_volume_tiers(db: Session = Depends(get_db)):
    return db.query(models.VolumeTier).order_by(models.VolumeTier.min_square_metres).all()
