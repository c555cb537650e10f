"""
Nudge Models — asking a connection to fill in data auto-gifting needs.

A nudge goes to the user's social connection (not to a specific gift's
recipient) when shipping address, birthday or email is missing.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

MissingDataType = Literal["shipping", "birthday", "email"]


class ConnectionProfile(BaseModel):
    """A user connection joined with the connected person's profile."""

    connection_id: str
    user_id: str
    connected_user_id: Optional[str] = None
    name: str = "your friend"
    email: Optional[str] = None
    birthday: Optional[str] = None
    shipping_address: Optional[dict[str, Any]] = None
    relationship_type: str = "friend"


class NudgeRecord(BaseModel):
    id: Optional[str] = None
    user_id: str
    connection_id: str
    recipient_email: str
    custom_message: str
    nudge_type: str = "auto_gift_setup"
    nudge_method: str = "email"
    delivery_status: str = "sent"
    created_at: datetime


class NudgeEligibility(BaseModel):
    eligible: bool
    reason: Optional[str] = None
    nudges_in_window: int = 0
    next_eligible_at: Optional[datetime] = None


class NudgeRequest(BaseModel):
    """Payload for POST /api/v1/nudges."""

    connection_id: str = Field(..., min_length=1)
    missing_data_types: Optional[list[MissingDataType]] = Field(
        default=None,
        description="Data to ask for. Omit to detect from the connection's profile.",
    )
    custom_relationship: Optional[str] = Field(default=None, max_length=60)

    @field_validator("missing_data_types")
    @classmethod
    def dedupe(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is None:
            return v
        if not v:
            raise ValueError("missing_data_types cannot be empty when provided.")
        return list(dict.fromkeys(v))


class NudgeResult(BaseModel):
    success: bool
    eligible: bool = True
    message: Optional[str] = None
    error: Optional[str] = None
    nudge_id: Optional[str] = None
    personalized: bool = False
