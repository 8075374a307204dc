"""
Shared FastAPI dependencies and engine-error → HTTP mapping.
"""

from fastapi import HTTPException, Request

from .errors import (
    PricingContextMissingError, PricingError, QuoteNotFoundError,
    QuoteValidationError, VolumeTierError,
)
from .pricing_engine import PricingEngine


def get_engine(request: Request) -> PricingEngine:
    return request.app.state.engine


def http_error(exc: PricingError) -> HTTPException:
    """Translate an engine error into the response the caller should see."""
    if isinstance(exc, QuoteValidationError):
        return HTTPException(status_code=422, detail=exc.to_dict())
    if isinstance(exc, QuoteNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PricingContextMissingError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, VolumeTierError):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
