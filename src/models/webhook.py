"""Database webhook payload models."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class WebhookPayload(BaseModel):
    """Change event posted by the database webhook."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["INSERT", "UPDATE", "DELETE"]
    table: str
    db_schema: str = Field("public", alias="schema")
    record: Optional[dict[str, Any]] = None
    old_record: Optional[dict[str, Any]] = None
