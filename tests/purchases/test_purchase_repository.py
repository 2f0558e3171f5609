"""SQLAlchemy repository and Unit of Work against a temporary SQLite file."""
import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from application.services.purchase_service import PurchaseApplicationService
from domain.common.exceptions import PurchaseConcurrencyException
from domain.purchase.entity import LineItem, Purchase, PurchaseStatus
from domain.purchase.service import new_purchase_id
from infrastructure.external.payments.payu_client import PayUClient
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'purchases.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


def _purchase(owner_id=1, status=PurchaseStatus.CREATED):
    now = datetime.now(timezone.utc)
    return Purchase(
        id=new_purchase_id(),
        owner_id=owner_id,
        name="Asha Rao",
        email="asha@example.com",
        phone="+91 98765 43210",
        street_address="12 MG Road",
        town="Bengaluru",
        line_items=[LineItem(product_ref="ticket-ga", name="General Admission", unit_price=Decimal("50.00"), quantity=2)],
        gift_items=[LineItem(product_ref="poster", unit_price=Decimal("0"), quantity=1)],
        total_amount=Decimal("100.00"),
        status=status,
        created_at=now,
        updated_at=now,
    )


async def _insert(session_factory, purchase):
    async with SQLAlchemyUnitOfWork(session_factory=session_factory) as uow:
        return await uow.purchase_repository.create(purchase)


@pytest.mark.asyncio
async def test_create_and_read_back_preserves_money_and_items(session_factory):
    created = await _insert(session_factory, _purchase())

    async with SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=True) as uow:
        loaded = await uow.purchase_repository.get_by_id(created.id)

    assert loaded.total_amount == Decimal("100.00")
    assert loaded.line_items[0].unit_price == Decimal("50.00")
    assert loaded.line_items[0].name == "General Admission"
    assert loaded.gift_items[0].product_ref == "poster"
    assert loaded.status == PurchaseStatus.CREATED
    assert loaded.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_transition_status_is_compare_and_swap(session_factory):
    created = await _insert(session_factory, _purchase(status=PurchaseStatus.PENDING_PAYMENT))

    async with SQLAlchemyUnitOfWork(session_factory=session_factory) as uow:
        first = await uow.purchase_repository.transition_status(
            created.id,
            PurchaseStatus.PENDING_PAYMENT,
            PurchaseStatus.CONFIRMED,
            gateway_ref="mihpay-1",
            confirmed_at=datetime.now(timezone.utc),
        )
    async with SQLAlchemyUnitOfWork(session_factory=session_factory) as uow:
        second = await uow.purchase_repository.transition_status(
            created.id,
            PurchaseStatus.PENDING_PAYMENT,
            PurchaseStatus.CANCELLED,
            failure_reason="late failure",
        )
        current = await uow.purchase_repository.get_by_id(created.id)

    assert first.status == PurchaseStatus.CONFIRMED
    assert first.gateway_ref == "mihpay-1"
    assert first.version == created.version + 1
    assert second is None
    assert current.status == PurchaseStatus.CONFIRMED
    assert current.failure_reason is None


@pytest.mark.asyncio
async def test_update_is_version_guarded(session_factory):
    created = await _insert(session_factory, _purchase())

    async with SQLAlchemyUnitOfWork(session_factory=session_factory) as uow:
        created.town = "Mysuru"
        updated = await uow.purchase_repository.update(created)
    assert updated.version == 2
    assert updated.town == "Mysuru"

    stale = _purchase()
    stale.id = created.id
    stale.version = 1
    with pytest.raises(PurchaseConcurrencyException):
        async with SQLAlchemyUnitOfWork(session_factory=session_factory) as uow:
            await uow.purchase_repository.update(stale)


@pytest.mark.asyncio
async def test_rollback_discards_the_transition(session_factory):
    created = await _insert(session_factory, _purchase(status=PurchaseStatus.PENDING_PAYMENT))

    with pytest.raises(RuntimeError):
        async with SQLAlchemyUnitOfWork(session_factory=session_factory) as uow:
            await uow.purchase_repository.transition_status(
                created.id, PurchaseStatus.PENDING_PAYMENT, PurchaseStatus.CONFIRMED
            )
            raise RuntimeError("boom")

    async with SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=True) as uow:
        current = await uow.purchase_repository.get_by_id(created.id)
    assert current.status == PurchaseStatus.PENDING_PAYMENT


@pytest.mark.asyncio
async def test_list_count_and_delete(session_factory):
    a = await _insert(session_factory, _purchase(owner_id=5))
    await _insert(session_factory, _purchase(owner_id=5, status=PurchaseStatus.PENDING_PAYMENT))
    await _insert(session_factory, _purchase(owner_id=6))

    async with SQLAlchemyUnitOfWork(session_factory=session_factory) as uow:
        repo = uow.purchase_repository
        assert await repo.count_by_owner(5) == 2
        assert await repo.count_by_owner(5, status=PurchaseStatus.CREATED) == 1
        listed = await repo.list_by_owner(5, skip=0, limit=1)
        assert len(listed) == 1
        assert await repo.delete(a.id) is True
        assert await repo.delete(a.id) is False
        assert await repo.count_by_owner(5) == 1


@pytest.mark.asyncio
async def test_concurrent_confirmations_settle_once_against_sqlite(session_factory, payu_settings, notifier):
    created = await _insert(session_factory, _purchase(status=PurchaseStatus.PENDING_PAYMENT))

    def uow_factory(readonly=False):
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)

    service = PurchaseApplicationService(
        uow_factory=uow_factory,
        gateway=PayUClient(payu_settings),
        notifier=notifier,
    )
    results = await asyncio.gather(
        service.confirm_payment(created.id, gateway_ref="mihpay-1"),
        service.confirm_payment(created.id, gateway_ref="mihpay-1"),
    )
    await PurchaseApplicationService.drain_notifications()

    assert sorted(changed for _, changed in results) == [False, True]
    assert all(purchase.status == PurchaseStatus.CONFIRMED for purchase, _ in results)
    assert len(notifier.calls) == 1
