"""
Purchase DTOs (Pydantic v2) validated at the API boundary.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import ConfigDict, EmailStr, Field, field_validator
from pydantic.types import condecimal

from application.dto import DTOBase


Money = condecimal(ge=0, max_digits=12, decimal_places=2)


def _reject_hash_delimiter(email: str) -> str:
    # the address is signed verbatim in a pipe-delimited payment hash
    if "|" in email:
        raise ValueError("must not contain '|'")
    return email


class LineItemDTO(DTOBase):
    product_ref: str = Field(..., min_length=1, max_length=100, description="Ticket/product reference")
    name: Optional[str] = Field(None, max_length=200, description="Display name used in receipts")
    unit_price: Money  # type: ignore[valid-type]
    quantity: int = Field(..., ge=1)


class GiftItemDTO(LineItemDTO):
    unit_price: Money = Decimal("0")  # type: ignore[valid-type]


class PurchaseCreateDTO(DTOBase):
    """Buyer details plus the cart contents and the declared total."""
    name: str = Field(..., min_length=1, max_length=150)
    company_name: Optional[str] = Field(None, max_length=150)
    street_address: str = Field(..., min_length=1, max_length=255)
    apartment_address: Optional[str] = Field(None, max_length=255)
    town: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., pattern=r"^\+?[0-9][0-9 \-]{5,19}$")
    email: EmailStr
    line_items: list[LineItemDTO] = Field(..., min_length=1)
    gift_items: list[GiftItemDTO] = Field(default_factory=list)
    total_amount: Money  # type: ignore[valid-type]
    coupon: Optional[str] = Field(None, max_length=64)

    @field_validator("name", "street_address", "town")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("email")
    @classmethod
    def _email_fits_hash(cls, v: str) -> str:
        return _reject_hash_delimiter(v)


class PurchaseUpdateDTO(DTOBase):
    """Partial cart edit. Only allowed while the purchase is still `created`."""
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    company_name: Optional[str] = Field(None, max_length=150)
    street_address: Optional[str] = Field(None, min_length=1, max_length=255)
    apartment_address: Optional[str] = Field(None, max_length=255)
    town: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, pattern=r"^\+?[0-9][0-9 \-]{5,19}$")
    email: Optional[EmailStr] = None
    line_items: Optional[list[LineItemDTO]] = Field(None, min_length=1)
    gift_items: Optional[list[GiftItemDTO]] = None
    total_amount: Optional[Money] = None  # type: ignore[valid-type]
    coupon: Optional[str] = Field(None, max_length=64)
    # Version the client last saw; stale edits are rejected
    expected_version: Optional[int] = Field(None, ge=1)

    @field_validator("email")
    @classmethod
    def _email_fits_hash(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else _reject_hash_delimiter(v)


class PurchaseResponseDTO(DTOBase):
    id: str
    owner_id: int
    name: str
    company_name: Optional[str]
    street_address: str
    apartment_address: Optional[str]
    town: str
    phone: str
    email: str
    line_items: list[LineItemDTO]
    gift_items: list[GiftItemDTO]
    total_amount: Decimal
    coupon: Optional[str]
    status: str
    version: int
    gateway_ref: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AdminCancelDTO(DTOBase):
    reason: Optional[str] = Field(None, max_length=255)
