"""
Purchase repository interface - abstract record store for purchases
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from .entity import Purchase, PurchaseStatus


class PurchaseRepository(ABC):
    """Purchase record store. Every operation is atomic per record."""

    @abstractmethod
    async def create(self, purchase: Purchase) -> Purchase:
        """Persist a new purchase and return it with its identifier."""

    @abstractmethod
    async def get_by_id(self, purchase_id: str) -> Optional[Purchase]:
        pass

    @abstractmethod
    async def update(self, purchase: Purchase) -> Purchase:
        """Write back cart fields.

        Optimistic concurrency: succeeds only when the stored version equals
        ``purchase.version``; raises PurchaseConcurrencyException otherwise.
        """

    @abstractmethod
    async def transition_status(
        self,
        purchase_id: str,
        expected: PurchaseStatus,
        target: PurchaseStatus,
        **changes: Any,
    ) -> Optional[Purchase]:
        """Compare-and-swap the status.

        Applies ``target`` (plus ``changes``) only if the stored status is still
        ``expected``. Returns None when no row matched.
        """

    @abstractmethod
    async def list_by_owner(
        self,
        owner_id: int,
        skip: int = 0,
        limit: int = 100,
        status: Optional[PurchaseStatus] = None,
    ) -> List[Purchase]:
        pass

    @abstractmethod
    async def count_by_owner(self, owner_id: int, status: Optional[PurchaseStatus] = None) -> int:
        pass

    @abstractmethod
    async def delete(self, purchase_id: str) -> bool:
        pass
