"""
Purchase repository - SQLAlchemy implementation of the record store
"""
from typing import Any, List, Optional
from decimal import Decimal

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import PurchaseConcurrencyException, PurchaseNotFoundException
from domain.purchase.entity import LineItem, Purchase, PurchaseStatus
from domain.purchase.repository import PurchaseRepository
from infrastructure.models.purchase import PurchaseModel


logger = get_logger(__name__)

# Columns a cart edit may write; status and settlement fields only move through transition_status
_CART_FIELDS = (
    "name",
    "company_name",
    "street_address",
    "apartment_address",
    "town",
    "phone",
    "email",
    "coupon",
)


class SQLAlchemyPurchaseRepository(PurchaseRepository):
    """SQLAlchemy purchase repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PurchaseModel) -> Purchase:
        """Database row -> domain entity"""
        return Purchase(
            id=model.id,
            owner_id=model.owner_id,
            name=model.name,
            company_name=model.company_name,
            street_address=model.street_address,
            apartment_address=model.apartment_address,
            town=model.town,
            phone=model.phone,
            email=model.email,
            line_items=[LineItem.from_dict(item) for item in (model.line_items or [])],
            gift_items=[LineItem.from_dict(item) for item in (model.gift_items or [])],
            total_amount=Decimal(str(model.total_amount)),
            coupon=model.coupon,
            status=PurchaseStatus(model.status),
            version=model.version,
            gateway_ref=model.gateway_ref,
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
            confirmed_at=model.confirmed_at,
            cancelled_at=model.cancelled_at,
        )

    def _to_model(self, entity: Purchase) -> PurchaseModel:
        """Domain entity -> database row"""
        return PurchaseModel(
            id=entity.id,
            owner_id=entity.owner_id,
            name=entity.name,
            company_name=entity.company_name,
            street_address=entity.street_address,
            apartment_address=entity.apartment_address,
            town=entity.town,
            phone=entity.phone,
            email=entity.email,
            line_items=[item.to_dict() for item in entity.line_items],
            gift_items=[item.to_dict() for item in entity.gift_items],
            total_amount=entity.total_amount,
            coupon=entity.coupon,
            status=entity.status.value,
            version=entity.version,
            gateway_ref=entity.gateway_ref,
            failure_reason=entity.failure_reason,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            confirmed_at=entity.confirmed_at,
            cancelled_at=entity.cancelled_at,
        )

    async def _fetch(self, purchase_id: str) -> Optional[PurchaseModel]:
        # populate_existing: bulk UPDATEs bypass the identity map
        result = await self.session.execute(
            select(PurchaseModel)
            .where(PurchaseModel.id == purchase_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, purchase: Purchase) -> Purchase:
        db_purchase = self._to_model(purchase)
        self.session.add(db_purchase)
        await self.session.flush()
        await self.session.refresh(db_purchase)
        logger.info(
            "purchase_row_inserted",
            purchase_id=db_purchase.id,
            owner_id=db_purchase.owner_id,
        )
        return self._to_entity(db_purchase)

    async def get_by_id(self, purchase_id: str) -> Optional[Purchase]:
        db_purchase = await self._fetch(purchase_id)
        return self._to_entity(db_purchase) if db_purchase else None

    async def update(self, purchase: Purchase) -> Purchase:
        """Version-guarded write of the cart fields."""
        values = {name: getattr(purchase, name) for name in _CART_FIELDS}
        values.update(
            line_items=[item.to_dict() for item in purchase.line_items],
            gift_items=[item.to_dict() for item in purchase.gift_items],
            total_amount=purchase.total_amount,
            version=PurchaseModel.version + 1,
        )
        result = await self.session.execute(
            update(PurchaseModel)
            .where(
                PurchaseModel.id == purchase.id,
                PurchaseModel.version == purchase.version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if await self._fetch(purchase.id) is None:
                raise PurchaseNotFoundException(purchase.id)
            logger.warning(
                "purchase_update_version_conflict",
                purchase_id=purchase.id,
                expected_version=purchase.version,
            )
            raise PurchaseConcurrencyException(purchase.id, purchase.version)

        db_purchase = await self._fetch(purchase.id)
        return self._to_entity(db_purchase)

    async def transition_status(
        self,
        purchase_id: str,
        expected: PurchaseStatus,
        target: PurchaseStatus,
        **changes: Any,
    ) -> Optional[Purchase]:
        """Single UPDATE ... WHERE status = expected; the database arbitrates races."""
        result = await self.session.execute(
            update(PurchaseModel)
            .where(
                PurchaseModel.id == purchase_id,
                PurchaseModel.status == expected.value,
            )
            .values(status=target.value, version=PurchaseModel.version + 1, **changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(
                "purchase_transition_not_applied",
                purchase_id=purchase_id,
                expected=expected.value,
                target=target.value,
            )
            return None

        db_purchase = await self._fetch(purchase_id)
        return self._to_entity(db_purchase)

    async def list_by_owner(
        self,
        owner_id: int,
        skip: int = 0,
        limit: int = 100,
        status: Optional[PurchaseStatus] = None,
    ) -> List[Purchase]:
        query = select(PurchaseModel).where(PurchaseModel.owner_id == owner_id)
        if status:
            query = query.where(PurchaseModel.status == status.value)
        query = query.order_by(PurchaseModel.created_at.desc()).offset(skip).limit(limit)

        result = await self.session.execute(query)
        return [self._to_entity(p) for p in result.scalars().all()]

    async def count_by_owner(self, owner_id: int, status: Optional[PurchaseStatus] = None) -> int:
        query = select(func.count()).select_from(PurchaseModel).where(PurchaseModel.owner_id == owner_id)
        if status:
            query = query.where(PurchaseModel.status == status.value)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def delete(self, purchase_id: str) -> bool:
        result = await self.session.execute(
            delete(PurchaseModel)
            .where(PurchaseModel.id == purchase_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
