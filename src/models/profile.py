"""Profile model - per-user role and contact details."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    PENDING = "pending"
    BUYER = "buyer"
    ADMIN = "admin"


class Profile(BaseModel):
    """Row of the profiles table, keyed by auth user id."""
    user_id: str = Field(..., description="Auth user ID (uuid)")
    role: Role = Field(default=Role.PENDING, description="pending, buyer or admin")
    is_admin: bool = Field(default=False, description="Legacy admin flag, superseded by role")
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def effective_role(self) -> Role:
        if self.is_admin or self.role == Role.ADMIN:
            return Role.ADMIN
        return self.role

    def display_name(self) -> Optional[str]:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email
