"""
Purchase database model - SQLAlchemy ORM mapping
Infrastructure detail only; business rules live in domain.purchase.entity.Purchase
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, JSON, Numeric, String, Text

from .base import Base


class PurchaseModel(Base):
    """Row mapping for a purchase; no business logic here."""
    __tablename__ = "purchases"

    # Primary key doubles as the gateway transaction id
    id = Column(String(32), primary_key=True, comment="Purchase id / gateway txnid")
    owner_id = Column(Integer, nullable=False, index=True, comment="Owning user id")

    # Customer details
    name = Column(String(200), nullable=False, comment="Customer full name")
    company_name = Column(String(200), nullable=True)
    street_address = Column(String(300), nullable=False)
    apartment_address = Column(String(300), nullable=True)
    town = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=False)
    email = Column(String(255), nullable=False)

    # Cart
    line_items = Column(JSON, nullable=False, default=list, comment="Ticket lines")
    gift_items = Column(JSON, nullable=False, default=list, comment="Gift lines, excluded from total")
    total_amount = Column(Numeric(precision=12, scale=2), nullable=False, comment="Amount charged")
    coupon = Column(String(64), nullable=True)

    # Lifecycle
    status = Column(
        String(32),
        nullable=False,
        default="created",
        index=True,
        comment="created/pending_payment/confirmed/cancelled",
    )
    version = Column(Integer, nullable=False, default=1, comment="Optimistic lock for cart edits")
    gateway_ref = Column(String(100), nullable=True, index=True, comment="Gateway payment id (mihpayid)")
    failure_reason = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_purchases_owner_status", "owner_id", "status"),
        Index("ix_purchases_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<PurchaseModel(id='{self.id}', owner_id={self.owner_id}, "
            f"total_amount={self.total_amount}, status='{self.status}')>"
        )
