"""
Payment DTOs (Pydantic v2): the checkout redirect payload and the
PayU callback fields shared by the webhook and the browser redirect.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class CheckoutRedirectDTO(BaseModel):
    """Fields the browser posts to the gateway's payment page."""
    action_url: str = Field(alias="actionUrl")
    key: str
    txnid: str
    amount: str  # fixed two decimals
    productinfo: str
    firstname: str
    email: str
    phone: str
    surl: str
    furl: str
    hash: str

    model_config = ConfigDict(populate_by_name=True)


class PayUCallbackDTO(BaseModel):
    """Gateway response fields.

    Accepts PayU's wire names as well as camelCase variants; blank values
    are treated as absent.
    """
    txnid: Optional[str] = Field(None, validation_alias=AliasChoices("txnid", "transactionId", "transaction_id"))
    status: Optional[str] = None
    hash: Optional[str] = Field(None, validation_alias=AliasChoices("hash", "signature"))
    amount: Optional[str] = None
    productinfo: Optional[str] = Field(None, validation_alias=AliasChoices("productinfo", "productInfo"))
    firstname: Optional[str] = Field(None, validation_alias=AliasChoices("firstname", "firstName"))
    email: Optional[str] = None
    key: Optional[str] = Field(None, validation_alias=AliasChoices("key", "merchantKey", "merchant_key"))
    mihpayid: Optional[str] = None
    additional_charges: Optional[str] = Field(
        None, validation_alias=AliasChoices("additionalCharges", "additional_charges")
    )
    error_message: Optional[str] = Field(
        None, validation_alias=AliasChoices("error_Message", "error_message", "error")
    )

    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PayUCallbackDTO":
        return cls.model_validate(dict(data))

    def hash_fields(self) -> dict[str, Optional[str]]:
        return {
            "key": self.key,
            "txnid": self.txnid,
            "amount": self.amount,
            "productinfo": self.productinfo,
            "firstname": self.firstname,
            "email": self.email,
        }


class CallbackOutcomeDTO(BaseModel):
    purchase_id: str
    status: str
    changed: bool
    succeeded: bool
    reason: Optional[str] = None
