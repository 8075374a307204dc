"""
Engine error taxonomy.

Invalid input and missing context are fatal and propagate to the caller of
calculate(). Configuration gaps (discontinued edge profile, missing service
rate) are NOT errors; the affected line item is omitted.
"""

from typing import Optional


class PricingError(Exception):
    """Base class for every error the pricing engine raises."""


class QuoteValidationError(PricingError, ValueError):
    """A piece carries input the engine refuses to price."""

    def __init__(self, message: str, piece_id: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.piece_id = piece_id
        self.field = field

    def to_dict(self) -> dict:
        return {
            "error": "invalid_input",
            "message": self.message,
            "piece_id": self.piece_id,
            "field": self.field,
        }


class QuoteNotFoundError(PricingError, LookupError):
    def __init__(self, quote_id):
        super().__init__(f"Quote not found: {quote_id}")
        self.quote_id = quote_id


class PricingContextMissingError(PricingError):
    """No pricing settings exist for the quote's organisation. Never default them."""

    def __init__(self, organisation_id):
        super().__init__(
            f"No pricing settings configured for organisation {organisation_id!r}"
        )
        self.organisation_id = organisation_id


class VolumeTierError(PricingError, ValueError):
    """Volume tier table is malformed, or no tier covers a project's area."""
