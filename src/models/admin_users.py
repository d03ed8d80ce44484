"""Admin users endpoint request/response models."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.models.profile import Profile


class ApproveUserRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)


class PendingUsersResponse(BaseModel):
    users: list[Profile]


class ApprovalResponse(BaseModel):
    approved: Optional[Profile] = None
    email_sent: bool = False
    email_error: Optional[str] = None
