"""
Purchase aggregate root - the cart/order tracked from creation to settlement.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException, PurchaseStateException


CENT = Decimal("0.01")


class PurchaseStatus(str, Enum):
    """Purchase lifecycle states"""
    CREATED = "created"
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# Allowed edges of the state machine; terminal states have none.
ALLOWED_TRANSITIONS: dict[PurchaseStatus, frozenset[PurchaseStatus]] = {
    PurchaseStatus.CREATED: frozenset({PurchaseStatus.PENDING_PAYMENT}),
    PurchaseStatus.PENDING_PAYMENT: frozenset({PurchaseStatus.CONFIRMED, PurchaseStatus.CANCELLED}),
    PurchaseStatus.CONFIRMED: frozenset(),
    PurchaseStatus.CANCELLED: frozenset(),
}

FINAL_STATUSES = frozenset({PurchaseStatus.CONFIRMED, PurchaseStatus.CANCELLED})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_money(value) -> Decimal:
    """Coerce to a currency-scale Decimal without ever passing through float."""
    if isinstance(value, float):
        value = repr(value)
    return Decimal(str(value)).quantize(CENT)


@dataclass
class LineItem:
    """A ticket (or gift) line inside a purchase."""

    product_ref: str
    unit_price: Decimal
    quantity: int
    name: Optional[str] = None

    def __post_init__(self):
        if not self.product_ref:
            raise DomainValidationException("Line item requires a product reference", field="product_ref")
        self.unit_price = to_money(self.unit_price)
        if self.unit_price < 0:
            raise DomainValidationException(
                f"Unit price must not be negative: {self.unit_price}", field="unit_price"
            )
        if self.quantity < 1:
            raise DomainValidationException(
                f"Quantity must be at least 1: {self.quantity}", field="quantity"
            )

    @property
    def display_name(self) -> str:
        return self.name or self.product_ref

    @property
    def subtotal(self) -> Decimal:
        return (self.unit_price * self.quantity).quantize(CENT)

    def to_dict(self) -> dict:
        return {
            "product_ref": self.product_ref,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        return cls(
            product_ref=data["product_ref"],
            name=data.get("name"),
            unit_price=Decimal(str(data.get("unit_price", "0"))),
            quantity=int(data["quantity"]),
        )


@dataclass
class Purchase:
    """
    Purchase aggregate root

    Business rules:
    1. line_items is non-empty and every quantity is >= 1
    2. total_amount equals the sum of line item subtotals
    3. status only moves along ALLOWED_TRANSITIONS
    4. id is immutable and is the gateway transaction id
    """

    id: Optional[str]
    owner_id: int
    name: str
    email: str
    phone: str
    street_address: str
    town: str
    line_items: list[LineItem]
    total_amount: Decimal
    status: PurchaseStatus = PurchaseStatus.CREATED
    company_name: Optional[str] = None
    apartment_address: Optional[str] = None
    gift_items: list[LineItem] = field(default_factory=list)
    coupon: Optional[str] = None
    version: int = 1
    gateway_ref: Optional[str] = None
    failure_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    def __post_init__(self):
        self.total_amount = to_money(self.total_amount)
        if self.gift_items is None:
            self.gift_items = []
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.confirmed_at = _ensure_utc(self.confirmed_at)
        self.cancelled_at = _ensure_utc(self.cancelled_at)

    def computed_total(self) -> Decimal:
        return sum((item.subtotal for item in self.line_items), Decimal("0")).quantize(CENT)

    def validate_items(self) -> None:
        """Business rule: at least one line item"""
        if not self.line_items:
            raise DomainValidationException("Purchase requires at least one line item", field="line_items")

    def validate_totals(self) -> None:
        """Business rule: declared total matches the line items"""
        expected = self.computed_total()
        if self.total_amount != expected:
            raise DomainValidationException(
                f"Declared total {self.total_amount} does not match line items total {expected}",
                field="total_amount",
                details={"declared": str(self.total_amount), "computed": str(expected)},
            )

    def is_final_status(self) -> bool:
        return self.status in FINAL_STATUSES

    def can_transition_to(self, target: PurchaseStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def _transition(self, target: PurchaseStatus) -> datetime:
        if not self.can_transition_to(target):
            raise PurchaseStateException(self.status.value, target.value)
        now = datetime.now(timezone.utc)
        self.status = target
        self.updated_at = now
        return now

    def mark_pending_payment(self) -> None:
        self._transition(PurchaseStatus.PENDING_PAYMENT)

    def mark_confirmed(self, gateway_ref: Optional[str] = None) -> None:
        self.confirmed_at = self._transition(PurchaseStatus.CONFIRMED)
        if gateway_ref:
            self.gateway_ref = gateway_ref
        self.failure_reason = None

    def mark_cancelled(self, reason: Optional[str] = None) -> None:
        self.cancelled_at = self._transition(PurchaseStatus.CANCELLED)
        self.failure_reason = reason

    def is_editable(self) -> bool:
        """Only carts that never reached the gateway can be edited."""
        return self.status == PurchaseStatus.CREATED

    def is_deletable(self) -> bool:
        return self.status != PurchaseStatus.CONFIRMED

    @property
    def first_name(self) -> str:
        parts = self.name.split()
        return parts[0] if parts else ""
