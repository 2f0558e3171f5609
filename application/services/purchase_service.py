"""
Purchase application service - the purchase lifecycle engine.

Orchestrates cart management, checkout (payment request construction) and
settlement transitions. Each public call runs in its own Unit of Work; the
gateway adapter and the notifier are injected by the composition root.
"""
from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Tuple

from application.dtos.payments import CheckoutRedirectDTO
from application.dtos.purchases import (
    PurchaseCreateDTO,
    PurchaseResponseDTO,
    PurchaseUpdateDTO,
)
from application.ports.notifications import OrderNotifier
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    PurchaseConcurrencyException,
    PurchaseNotFoundException,
    PurchasePreconditionException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.purchase.entity import LineItem, Purchase, PurchaseStatus, to_money
from domain.purchase.service import PurchaseDomainService


logger = get_logger(__name__)

# Optional buyer details a cart edit may reset to null
_CLEARABLE_FIELDS = frozenset({"company_name", "apartment_address", "coupon"})

# Strong references to in-flight notification tasks; the event loop only keeps weak ones.
_background_tasks: set[asyncio.Task] = set()


def _line_items(items) -> list[LineItem]:
    return [
        LineItem(
            product_ref=item.product_ref,
            name=item.name,
            unit_price=item.unit_price,
            quantity=item.quantity,
        )
        for item in items
    ]


def _receipt_lines(items: list[LineItem]) -> list[dict]:
    return [
        {
            "name": item.display_name,
            "quantity": item.quantity,
            "price": str(item.unit_price),
            "subtotal": str(item.subtotal),
        }
        for item in items
    ]


class PurchaseApplicationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        notifier: OrderNotifier,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self.notifier = notifier

    # ---- cart management ----

    async def create_purchase(self, owner_id: int, data: PurchaseCreateDTO) -> PurchaseResponseDTO:
        async with self._uow_factory() as uow:
            domain_service = PurchaseDomainService(uow.purchase_repository)
            purchase = await domain_service.create_purchase(Purchase(
                id=None,
                owner_id=owner_id,
                name=data.name,
                company_name=data.company_name,
                street_address=data.street_address,
                apartment_address=data.apartment_address,
                town=data.town,
                phone=data.phone,
                email=str(data.email),
                line_items=_line_items(data.line_items),
                gift_items=_line_items(data.gift_items),
                total_amount=data.total_amount,
                coupon=data.coupon,
            ))
        logger.info(
            "purchase_created",
            purchase_id=purchase.id,
            owner_id=owner_id,
            total_amount=str(purchase.total_amount),
        )
        return self._to_response_dto(purchase)

    async def get_purchase(self, owner_id: int, purchase_id: str) -> PurchaseResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            purchase = await self._get_owned(uow, owner_id, purchase_id)
            return self._to_response_dto(purchase)

    async def list_purchases(
        self,
        owner_id: int,
        skip: int = 0,
        limit: int = 100,
        status: Optional[PurchaseStatus] = None,
    ) -> Tuple[List[PurchaseResponseDTO], int]:
        async with self._uow_factory(readonly=True) as uow:
            purchases = await uow.purchase_repository.list_by_owner(owner_id, skip=skip, limit=limit, status=status)
            total = await uow.purchase_repository.count_by_owner(owner_id, status=status)
            return [self._to_response_dto(p) for p in purchases], total

    async def update_purchase(
        self, owner_id: int, purchase_id: str, data: PurchaseUpdateDTO
    ) -> PurchaseResponseDTO:
        async with self._uow_factory() as uow:
            purchase = await self._get_owned(uow, owner_id, purchase_id)
            if not purchase.is_editable():
                raise PurchasePreconditionException(
                    f"Purchase in state {purchase.status.value} can no longer be edited",
                    details={"purchase_id": purchase_id, "status": purchase.status.value},
                )
            if data.expected_version is not None and data.expected_version != purchase.version:
                raise PurchaseConcurrencyException(purchase_id, data.expected_version)

            changes = data.model_dump(
                exclude_unset=True,
                exclude={"expected_version", "line_items", "gift_items"},
            )
            for field_name, value in changes.items():
                if value is None and field_name not in _CLEARABLE_FIELDS:
                    raise DomainValidationException(f"{field_name} cannot be cleared", field=field_name)
                setattr(purchase, field_name, str(value) if field_name == "email" else value)
            if data.line_items is not None:
                purchase.line_items = _line_items(data.line_items)
            if data.gift_items is not None:
                purchase.gift_items = _line_items(data.gift_items)
            purchase.total_amount = to_money(purchase.total_amount)
            purchase.validate_items()
            purchase.validate_totals()

            updated = await uow.purchase_repository.update(purchase)
        logger.info("purchase_updated", purchase_id=purchase_id, version=updated.version)
        return self._to_response_dto(updated)

    async def delete_purchase(self, owner_id: int, purchase_id: str) -> bool:
        async with self._uow_factory() as uow:
            purchase = await self._get_owned(uow, owner_id, purchase_id)
            if not purchase.is_deletable():
                raise PurchasePreconditionException(
                    "Confirmed purchases cannot be deleted",
                    details={"purchase_id": purchase_id},
                )
            deleted = await uow.purchase_repository.delete(purchase_id)
        logger.info("purchase_deleted", purchase_id=purchase_id, deleted=deleted)
        return deleted

    # ---- lifecycle ----

    async def initiate_checkout(self, owner_id: int, purchase_id: str) -> CheckoutRedirectDTO:
        """
        created -> pending_payment, returning the signed gateway form.

        Retrying on a pending purchase returns a freshly signed payload.
        The state is committed before the payload reaches the client.
        """
        # Hard-fail before touching state if merchant credentials are absent.
        self.gateway.ensure_configured()
        async with self._uow_factory() as uow:
            purchase = await self._get_owned(uow, owner_id, purchase_id)
            domain_service = PurchaseDomainService(uow.purchase_repository)
            purchase, changed = await domain_service.begin_checkout(purchase)
            redirect = self.gateway.build_checkout(purchase)
            self._log_events(domain_service)
        logger.info(
            "checkout_initiated",
            purchase_id=purchase_id,
            amount=redirect.amount,
            retried=not changed,
        )
        return redirect

    async def find_purchase(self, purchase_id: str) -> Purchase:
        """Lookup without ownership checks, for gateway-originated calls."""
        async with self._uow_factory(readonly=True) as uow:
            purchase = await uow.purchase_repository.get_by_id(purchase_id)
            if not purchase:
                raise PurchaseNotFoundException(purchase_id)
            return purchase

    async def confirm_payment(self, purchase_id: str, gateway_ref: Optional[str] = None) -> Tuple[Purchase, bool]:
        async with self._uow_factory() as uow:
            domain_service = PurchaseDomainService(uow.purchase_repository)
            purchase, changed = await domain_service.settle(
                purchase_id, PurchaseStatus.CONFIRMED, gateway_ref=gateway_ref
            )
            self._log_events(domain_service)
        if changed:
            logger.info("purchase_confirmed", purchase_id=purchase_id, gateway_ref=gateway_ref)
            # only after commit, so a rolled back transition never emails anyone
            self._schedule_confirmation(purchase)
        else:
            logger.info("purchase_transition_noop", purchase_id=purchase_id, status=purchase.status.value)
        return purchase, changed

    async def cancel_payment(
        self,
        purchase_id: str,
        reason: Optional[str] = None,
        gateway_ref: Optional[str] = None,
    ) -> Tuple[Purchase, bool]:
        async with self._uow_factory() as uow:
            domain_service = PurchaseDomainService(uow.purchase_repository)
            purchase, changed = await domain_service.settle(
                purchase_id, PurchaseStatus.CANCELLED, gateway_ref=gateway_ref, reason=reason
            )
            self._log_events(domain_service)
        if changed:
            logger.info("purchase_cancelled", purchase_id=purchase_id, reason=reason)
        else:
            logger.info("purchase_transition_noop", purchase_id=purchase_id, status=purchase.status.value)
        return purchase, changed

    async def admin_cancel(self, purchase_id: str, reason: Optional[str] = None) -> PurchaseResponseDTO:
        purchase, _ = await self.cancel_payment(purchase_id, reason=reason or "cancelled by administrator")
        return self._to_response_dto(purchase)

    # ---- notifications ----

    def _schedule_confirmation(self, purchase: Purchase) -> None:
        task = asyncio.create_task(
            self._send_confirmation(purchase),
            name=f"order-confirmation-{purchase.id}",
        )
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

    async def _send_confirmation(self, purchase: Purchase) -> None:
        try:
            await self.notifier.send_order_confirmation(
                purchase.email,
                _receipt_lines(purchase.line_items),
                _receipt_lines(purchase.gift_items),
                purchase.id,
            )
            logger.info("order_confirmation_dispatched", purchase_id=purchase.id)
        except Exception as exc:
            # The transition is already committed; the notification failure is only reported.
            logger.error(
                "order_confirmation_dispatch_failed",
                purchase_id=purchase.id,
                error=str(exc),
                exc_info=True,
            )

    @staticmethod
    async def drain_notifications() -> None:
        """Wait for in-flight confirmation tasks (shutdown and tests)."""
        if _background_tasks:
            await asyncio.gather(*list(_background_tasks), return_exceptions=True)

    # ---- helpers ----

    async def _get_owned(self, uow: AbstractUnitOfWork, owner_id: int, purchase_id: str) -> Purchase:
        purchase = await uow.purchase_repository.get_by_id(purchase_id)
        # Someone else's purchase is reported as missing, not forbidden.
        if not purchase or purchase.owner_id != owner_id:
            raise PurchaseNotFoundException(purchase_id)
        return purchase

    @staticmethod
    def _log_events(domain_service: PurchaseDomainService) -> None:
        for event in domain_service.clear_events():
            logger.info("purchase_event", event_type=type(event).__name__, purchase_id=event.purchase_id)

    def _to_response_dto(self, purchase: Purchase) -> PurchaseResponseDTO:
        return PurchaseResponseDTO(
            id=purchase.id,
            owner_id=purchase.owner_id,
            name=purchase.name,
            company_name=purchase.company_name,
            street_address=purchase.street_address,
            apartment_address=purchase.apartment_address,
            town=purchase.town,
            phone=purchase.phone,
            email=purchase.email,
            line_items=[item.to_dict() for item in purchase.line_items],
            gift_items=[item.to_dict() for item in purchase.gift_items],
            total_amount=purchase.total_amount,
            coupon=purchase.coupon,
            status=purchase.status.value,
            version=purchase.version,
            gateway_ref=purchase.gateway_ref,
            failure_reason=purchase.failure_reason,
            created_at=purchase.created_at,
            updated_at=purchase.updated_at,
            confirmed_at=purchase.confirmed_at,
            cancelled_at=purchase.cancelled_at,
        )
