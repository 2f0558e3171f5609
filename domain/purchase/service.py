"""
Purchase domain service - state machine transitions against the record store
"""
from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from .entity import Purchase, PurchaseStatus
from .events import CheckoutInitiated, PurchaseCancelled, PurchaseConfirmed
from .repository import PurchaseRepository
from domain.common.exceptions import (
    PurchaseNotFoundException,
    PurchasePreconditionException,
    PurchaseStateException,
)


def new_purchase_id() -> str:
    """24 hex chars, short enough for the gateway's txnid limit."""
    return secrets.token_hex(12)


class PurchaseDomainService:
    """
    Purchase domain service

    Responsibilities:
    1. Validate a purchase before it is first persisted
    2. Drive state transitions through compare-and-swap on the status
    3. Collect domain events for the application layer
    """

    def __init__(self, purchase_repository: PurchaseRepository):
        self.purchase_repository = purchase_repository
        self.events: List = []

    async def create_purchase(self, purchase: Purchase) -> Purchase:
        purchase.validate_items()
        purchase.validate_totals()
        now = datetime.now(timezone.utc)
        purchase.id = purchase.id or new_purchase_id()
        purchase.status = PurchaseStatus.CREATED
        purchase.version = 1
        purchase.created_at = now
        purchase.updated_at = now
        return await self.purchase_repository.create(purchase)

    async def get_purchase(self, purchase_id: str) -> Purchase:
        purchase = await self.purchase_repository.get_by_id(purchase_id)
        if not purchase:
            raise PurchaseNotFoundException(purchase_id)
        return purchase

    async def begin_checkout(self, purchase: Purchase) -> Tuple[Purchase, bool]:
        """
        created -> pending_payment

        A purchase already in pending_payment is returned unchanged so an
        abandoned redirect can be retried. Returns (purchase, changed).
        """
        if purchase.is_final_status():
            raise PurchaseStateException(purchase.status.value, PurchaseStatus.PENDING_PAYMENT.value)
        if not purchase.line_items:
            raise PurchasePreconditionException(
                "Cannot check out a purchase without line items",
                details={"purchase_id": purchase.id},
            )
        if purchase.total_amount <= 0:
            raise PurchasePreconditionException(
                f"Cannot check out a purchase with total {purchase.total_amount}",
                details={"purchase_id": purchase.id},
            )
        purchase.validate_totals()

        if purchase.status == PurchaseStatus.PENDING_PAYMENT:
            return purchase, False

        updated = await self.purchase_repository.transition_status(
            purchase.id,
            PurchaseStatus.CREATED,
            PurchaseStatus.PENDING_PAYMENT,
            updated_at=datetime.now(timezone.utc),
        )
        if updated is None:
            # Lost a race with another checkout; re-evaluate against fresh state.
            current = await self.get_purchase(purchase.id)
            if current.status != PurchaseStatus.PENDING_PAYMENT:
                raise PurchaseStateException(current.status.value, PurchaseStatus.PENDING_PAYMENT.value)
            return current, False

        self.events.append(CheckoutInitiated(
            purchase_id=updated.id,
            owner_id=updated.owner_id,
            amount=str(updated.total_amount),
        ))
        return updated, True

    async def settle(
        self,
        purchase_id: str,
        target: PurchaseStatus,
        *,
        gateway_ref: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Tuple[Purchase, bool]:
        """
        pending_payment -> confirmed | cancelled

        Terminal purchases are left untouched and reported with changed=False,
        so repeat notifications are acknowledged without side effects.
        """
        if target not in (PurchaseStatus.CONFIRMED, PurchaseStatus.CANCELLED):
            raise ValueError(f"settle() only accepts terminal targets, got {target}")

        purchase = await self.get_purchase(purchase_id)
        if purchase.is_final_status():
            return purchase, False
        if not purchase.can_transition_to(target):
            raise PurchaseStateException(purchase.status.value, target.value)

        # Validate on the entity first so the persisted changes match its rules.
        if target == PurchaseStatus.CONFIRMED:
            purchase.mark_confirmed(gateway_ref)
            changes = {
                "confirmed_at": purchase.confirmed_at,
                "gateway_ref": purchase.gateway_ref,
                "failure_reason": None,
            }
        else:
            purchase.mark_cancelled(reason)
            changes = {
                "cancelled_at": purchase.cancelled_at,
                "failure_reason": reason,
            }
            if gateway_ref:
                changes["gateway_ref"] = gateway_ref
        changes["updated_at"] = purchase.updated_at

        updated = await self.purchase_repository.transition_status(
            purchase_id, PurchaseStatus.PENDING_PAYMENT, target, **changes
        )
        if updated is None:
            current = await self.get_purchase(purchase_id)
            if current.is_final_status():
                return current, False
            raise PurchaseStateException(current.status.value, target.value)

        if target == PurchaseStatus.CONFIRMED:
            self.events.append(PurchaseConfirmed(
                purchase_id=updated.id,
                owner_id=updated.owner_id,
                gateway_ref=updated.gateway_ref,
            ))
        else:
            self.events.append(PurchaseCancelled(
                purchase_id=updated.id,
                owner_id=updated.owner_id,
                reason=reason,
            ))
        return updated, True

    def clear_events(self) -> List:
        events = self.events.copy()
        self.events.clear()
        return events
