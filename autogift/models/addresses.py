"""
Address Models — recipient shipping addresses and capability tokens.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


class ShippingAddress(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    address_line1: str = Field(..., min_length=1, max_length=200)
    address_line2: Optional[str] = Field(default=None, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    zip_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(default="US", min_length=2, max_length=60)

    @field_validator("name", "address_line1", "city", "state", "zip_code", "country")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field cannot be blank.")
        return v

    @field_validator("address_line2")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None


class PendingRecipientAddress(BaseModel):
    """
    A single-use, time-boxed token letting a recipient submit their
    address without an account. `collected_at` is null until used.
    """

    id: Optional[str] = None
    token: str
    execution_id: str
    requested_by: str
    recipient_email: str
    expires_at: datetime
    collected_at: Optional[datetime] = None
    shipping_address: Optional[ShippingAddress] = None

    def is_usable(self, now: datetime) -> bool:
        return self.collected_at is None and self.expires_at > now


class ResolvedAddress(BaseModel):
    """A shipping address plus where it came from."""

    address: ShippingAddress
    source: Literal["recipient_provided", "user_verified", "giver_provided"]
    is_verified: bool = False


class AddressSubmitRequest(BaseModel):
    """JSON body POSTed by the address collection form."""

    address: ShippingAddress


class AddressSubmitResponse(BaseModel):
    success: bool
    status: Literal["collected", "already_used"]
    message: str
    execution_status: Optional[str] = None
