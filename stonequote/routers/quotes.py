from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from .. import models, schemas
from ..calculators.types import QuoteCalculationResult
from ..database import get_db
from ..dependencies import get_engine, http_error
from ..errors import PricingError
from ..pricing_engine import PricingEngine
from ..quote_loader import QuoteLoader

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("/{quote_id}/calculate", response_model=QuoteCalculationResult)
def calculate_quote(
    quote_id: int,
    force: bool = False,
    db: Session = Depends(get_db),
    engine: PricingEngine = Depends(get_engine),
):
    """Price a quote. Served from cache unless `force` or the entry has expired."""
    try:
        return engine.calculate(quote_id, QuoteLoader(db), force=force)
    except PricingError as e:
        raise http_error(e) from e


@router.delete("/{quote_id}/calculation")
def invalidate_calculation(quote_id: int, engine: PricingEngine = Depends(get_engine)):
    return {"ok": True, "invalidated": engine.invalidate(quote_id)}


@router.patch("/{quote_id}/pieces/{piece_id}", response_model=schemas.Piece)
def update_piece(
    quote_id: int,
    piece_id: int,
    update: schemas.PieceUpdate,
    db: Session = Depends(get_db),
    engine: PricingEngine = Depends(get_engine),
):
    """Edit a piece. Any change bumps the quote version and drops its cached price."""
    piece = db.query(models.QuotePiece).join(models.QuoteRoom).filter(
        models.QuotePiece.id == piece_id,
        models.QuoteRoom.quote_id == quote_id,
    ).first()
    if not piece:
        raise HTTPException(status_code=404, detail="Piece not found")

    changes = update.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(piece, field, value)

    if changes:
        quote = piece.room.quote
        quote.version = (quote.version or 1) + 1
    db.commit()
    db.refresh(piece)

    if changes:
        engine.invalidate(quote_id)
        logger.info("Piece %s on quote %s updated: %s", piece_id, quote_id, sorted(changes))
    return piece
