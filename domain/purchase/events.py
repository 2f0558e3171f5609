"""
Purchase domain events.

Dataclass events record lifecycle facts for downstream handling
(e.g. the order confirmation email). Domain stays free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PurchaseEvent:
    purchase_id: str
    owner_id: int
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class CheckoutInitiated(PurchaseEvent):
    amount: str = ""


@dataclass
class PurchaseConfirmed(PurchaseEvent):
    gateway_ref: Optional[str] = None


@dataclass
class PurchaseCancelled(PurchaseEvent):
    reason: Optional[str] = None
