"""Saved property model."""

from typing import Optional

from pydantic import BaseModel


class SavedProperty(BaseModel):
    """A buyer's bookmark on a property. Existence is the whole payload."""
    user_id: str
    property_id: str
    created_at: Optional[str] = None
