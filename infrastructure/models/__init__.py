"""Infrastructure models package exports."""
from .base import Base, metadata
from .purchase import PurchaseModel

__all__ = [
    "Base",
    "metadata",
    "PurchaseModel",
]
