"""Purchase domain exports."""
from .entity import LineItem, Purchase, PurchaseStatus
from .repository import PurchaseRepository

__all__ = ["LineItem", "Purchase", "PurchaseStatus", "PurchaseRepository"]
