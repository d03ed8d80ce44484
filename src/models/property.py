"""Property (listing) models."""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_PHOTO_URL = "https://photos.google.com/"


class PropertyStatus(str, Enum):
    """Listing lifecycle status."""
    NEW = "New"
    PRICE_DROP = "Price Drop"
    UNDER_CONTRACT = "Under Contract"


def compute_spread(arv: float, price: float, repairs: float) -> float:
    """Investor margin heuristic: ARV minus asking price minus repairs."""
    return arv - price - repairs


class Property(BaseModel):
    """Off-market property listed for wholesale."""
    id: str = Field(..., description="Property ID (uuid)")
    address: str = Field(..., description="Street address")
    price: float = Field(..., description="Asking price")
    beds: float = Field(0, description="Bedrooms")
    baths: float = Field(0, description="Bathrooms")
    sqft: float = Field(0, description="Living area in square feet")
    acres: float = Field(0, description="Lot size in acres")
    arv: float = Field(..., description="After-repair value")
    repairs: float = Field(..., description="Repair estimate")
    lat: Optional[float] = None
    lng: Optional[float] = None
    photo_url: str = Field(DEFAULT_PHOTO_URL, description="Photo album link")
    status: PropertyStatus = Field(PropertyStatus.NEW, description="New, Price Drop or Under Contract")
    is_accepting_offers: bool = Field(True, description="False once an offer is accepted")
    accepted_offer_id: Optional[str] = Field(None, description="Accepted offer (uuid FK)")
    offer_deadline: Optional[datetime] = Field(None, description="Offers refused after this instant")
    created_at: Optional[str] = None

    @field_validator("photo_url", mode="before")
    @classmethod
    def _default_photo(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_PHOTO_URL
        return value

    @field_validator("is_accepting_offers", mode="before")
    @classmethod
    def _default_accepting(cls, value: Any) -> Any:
        # Rows created before the column existed come back null
        if not isinstance(value, bool):
            return True
        return value

    @property
    def spread(self) -> float:
        return compute_spread(self.arv, self.price, self.repairs)

    def deadline_passed(self, now: Optional[datetime] = None) -> bool:
        if self.offer_deadline is None:
            return False
        now = now or datetime.now(timezone.utc)
        deadline = self.offer_deadline
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        return now >= deadline

    def offers_closed_reason(self, now: Optional[datetime] = None) -> Optional[str]:
        """Return why the property refuses new offers, or None when it accepts them."""
        if self.accepted_offer_id:
            return "An offer has already been accepted on this property."
        if not self.is_accepting_offers:
            return "This property is no longer accepting offers."
        if self.deadline_passed(now):
            return "The offer deadline for this property has passed."
        return None


class PropertyDraft(BaseModel):
    """Admin input for a new listing."""
    address: str
    photo_url: Optional[str] = None
    status: PropertyStatus = PropertyStatus.NEW
    price: float
    beds: float
    baths: float
    sqft: float
    acres: float
    arv: float
    repairs: float
    lat: float
    lng: float

    @field_validator("address")
    @classmethod
    def _address_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("address is required")
        return value

    @field_validator("price", "beds", "baths", "sqft", "acres", "arv", "repairs", "lat", "lng")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("must be a finite number")
        return value

    def to_row(self) -> dict:
        photo = (self.photo_url or "").strip()
        return {
            "address": self.address,
            "photo_url": photo or DEFAULT_PHOTO_URL,
            "status": self.status.value,
            "price": self.price,
            "beds": self.beds,
            "baths": self.baths,
            "sqft": self.sqft,
            "acres": self.acres,
            "arv": self.arv,
            "repairs": self.repairs,
            "lat": self.lat,
            "lng": self.lng,
        }


class PropertyOfferCount(BaseModel):
    """Row of the property_offer_counts view."""
    property_id: str
    offer_count: int = 0
    pending_count: int = 0
