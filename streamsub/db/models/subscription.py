"""User subscription instances and their payment history."""
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean, ForeignKey, Index, Numeric, String, UniqueConstraint, Uuid, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from streamsub.core.clock import utcnow
from streamsub.db.base import Base
from streamsub.db.types import UTCDateTime

if TYPE_CHECKING:  # pragma: no cover
    from streamsub.db.models.plan import Plan


class SubscriptionStatus:
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    ALL = (PENDING, ACTIVE, CANCELLED, EXPIRED)


class UserSubscription(Base):
    """One user's purchased term against a plan."""

    __tablename__ = "user_subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    plan_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("plans.id"), nullable=False)
    plan_name: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="NGN")
    billing_cycle: Mapped[str] = mapped_column(String(16), nullable=False, default="monthly")

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=SubscriptionStatus.PENDING
    )
    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False, default="paystack")

    # Gateway correlation data
    payment_reference: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    access_code: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    authorization_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    authorization_code: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    card_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    last4: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    exp_month: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    exp_year: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    bank: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    account_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    plan: Mapped["Plan"] = relationship("Plan", lazy="raise")
    payments: Mapped[List["SubscriptionPayment"]] = relationship(
        "SubscriptionPayment",
        order_by="SubscriptionPayment.paid_at",
        lazy="raise",
    )

    __table_args__ = (
        Index(
            "uq_user_subscriptions_one_active",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_user_subscriptions_user_status", "user_id", "status"),
        Index("ix_user_subscriptions_end_date", "end_date"),
        Index("ix_user_subscriptions_payment_reference", "payment_reference"),
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<UserSubscription {self.id} user={self.user_id} status={self.status}>"


class SubscriptionPayment(Base):
    """Append-only payment history entry."""

    __tablename__ = "subscription_payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_subscriptions.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    reference: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    paid_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("subscription_id", "reference", name="uq_payment_subscription_reference"),
    )
