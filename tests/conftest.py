"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import asyncio
import copy
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")

import pytest

from application.dtos.purchases import PurchaseCreateDTO
from application.services.payment_callback_service import PaymentCallbackService
from application.services.purchase_service import PurchaseApplicationService
from core.config import PayUSettings
from domain.common.exceptions import PurchaseConcurrencyException, PurchaseNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.purchase.repository import PurchaseRepository
from infrastructure.external.payments import payu_hash
from infrastructure.external.payments.payu_client import PayUClient


class InMemoryPurchaseRepository(PurchaseRepository):
    """Dict-backed store; reads yield to the loop so concurrent callers interleave."""

    def __init__(self, store: dict):
        self._store = store

    async def create(self, purchase):
        self._store[purchase.id] = copy.deepcopy(purchase)
        return copy.deepcopy(purchase)

    async def get_by_id(self, purchase_id):
        await asyncio.sleep(0)
        found = self._store.get(purchase_id)
        return copy.deepcopy(found) if found else None

    async def update(self, purchase):
        current = self._store.get(purchase.id)
        if current is None:
            raise PurchaseNotFoundException(purchase.id)
        if current.version != purchase.version:
            raise PurchaseConcurrencyException(purchase.id, purchase.version)
        stored = copy.deepcopy(purchase)
        stored.version += 1
        self._store[purchase.id] = stored
        return copy.deepcopy(stored)

    async def transition_status(self, purchase_id, expected, target, **changes):
        # no await between the check and the write: atomic on one event loop
        current = self._store.get(purchase_id)
        if current is None or current.status != expected:
            return None
        updated = copy.deepcopy(current)
        updated.status = target
        updated.version += 1
        for name, value in changes.items():
            setattr(updated, name, value)
        self._store[purchase_id] = updated
        return copy.deepcopy(updated)

    async def list_by_owner(self, owner_id, skip=0, limit=100, status=None):
        rows = [p for p in self._store.values() if p.owner_id == owner_id and (status is None or p.status == status)]
        rows.sort(key=lambda p: p.created_at, reverse=True)
        return [copy.deepcopy(p) for p in rows[skip:skip + limit]]

    async def count_by_owner(self, owner_id, status=None):
        return len([p for p in self._store.values() if p.owner_id == owner_id and (status is None or p.status == status)])

    async def delete(self, purchase_id):
        return self._store.pop(purchase_id, None) is not None


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: dict, *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self._store = store
        self._snapshot = None

    async def __aenter__(self):
        self._snapshot = copy.deepcopy(self._store)
        self.purchase_repository = InMemoryPurchaseRepository(self._store)
        return self

    async def commit(self):
        self._committed = True

    async def rollback(self):
        if self._snapshot is not None and not self._readonly:
            self._store.clear()
            self._store.update(self._snapshot)


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    async def send_order_confirmation(self, email, line_items, gift_items, order_id):
        self.calls.append(
            {"email": email, "line_items": list(line_items), "gift_items": list(gift_items), "order_id": order_id}
        )


class FailingNotifier:
    def __init__(self):
        self.attempts = 0

    async def send_order_confirmation(self, email, line_items, gift_items, order_id):
        self.attempts += 1
        raise RuntimeError("mail relay unavailable")


@pytest.fixture
def payu_settings():
    return PayUSettings(
        merchant_key="test-key",
        merchant_salt="test-salt",
        service_base_url="https://api.example.com",
        frontend_base_url="https://shop.example.com",
    )


@pytest.fixture
def store():
    return {}


@pytest.fixture
def uow_factory(store):
    def _factory(readonly: bool = False):
        return InMemoryUnitOfWork(store, readonly=readonly)
    return _factory


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def purchase_service(uow_factory, payu_settings, notifier):
    return PurchaseApplicationService(
        uow_factory=uow_factory,
        gateway=PayUClient(payu_settings),
        notifier=notifier,
    )


@pytest.fixture
def callback_service(purchase_service, payu_settings):
    return PaymentCallbackService(purchase_service, purchase_service.gateway, payu_settings)


@pytest.fixture
def purchase_payload():
    return {
        "name": "Asha Rao",
        "street_address": "12 MG Road",
        "town": "Bengaluru",
        "phone": "+91 98765 43210",
        "email": "asha@example.com",
        "line_items": [
            {"product_ref": "ticket-ga", "name": "General Admission", "unit_price": "50.00", "quantity": 2},
        ],
        "gift_items": [
            {"product_ref": "poster", "name": "Festival Poster", "quantity": 1},
        ],
        "total_amount": "100.00",
    }


@pytest.fixture
def create_dto(purchase_payload):
    return PurchaseCreateDTO(**purchase_payload)


@pytest.fixture
def signed_callback(payu_settings):
    """Build gateway response fields signed with the test salt."""
    def _build(purchase, status="success", **overrides):
        fields = {
            "key": payu_settings.merchant_key,
            "txnid": purchase.id,
            "amount": payu_hash.format_amount(purchase.total_amount),
            "productinfo": "General Admission x2",
            "firstname": "Asha",
            "email": purchase.email,
        }
        fields.update(overrides)
        data = dict(fields, status=status, mihpayid="403993715523")
        data["hash"] = payu_hash.compute_inbound_signature(fields, payu_settings.merchant_salt, status)
        return data
    return _build


@pytest.fixture
def failing_notifier():
    return FailingNotifier()
