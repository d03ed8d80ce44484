"""Offer models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.models.property import Property


class OfferStatus(str, Enum):
    """Offer status values.

    WITHDRAWN is accepted when reading rows but never written: a withdrawal
    deletes the offer row.
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class Offer(BaseModel):
    """Buyer offer on a property."""
    id: str = Field(..., description="Offer ID (uuid)")
    property_id: str = Field(..., description="Property ID (uuid FK)")
    user_id: str = Field(..., description="Submitting buyer (auth user id)")
    offer_price: float = Field(..., description="Offered price")
    notes: Optional[str] = Field(None, description="Free-text notes")
    status: OfferStatus = Field(default=OfferStatus.PENDING)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class OfferWithProperty(Offer):
    """Offer joined with its property; listing is None once the property is deleted."""
    model_config = ConfigDict(populate_by_name=True)

    listing: Optional[Property] = Field(None, alias="property")

    @property
    def delta(self) -> Optional[float]:
        if self.listing is None:
            return None
        return self.offer_price - self.listing.price
