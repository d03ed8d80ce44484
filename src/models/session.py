"""Authenticated session model."""

from typing import Optional

from pydantic import BaseModel


class Session(BaseModel):
    """Caller identity resolved from a bearer token."""
    user_id: str
    access_token: str
    email: Optional[str] = None
