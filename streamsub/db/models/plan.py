"""Subscription plan model definition."""
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Index, Integer, Numeric, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from streamsub.core.clock import utcnow
from streamsub.db.base import Base
from streamsub.db.types import UTCDateTime


class Plan(Base):
    """Represents a catalog offering users can subscribe to."""

    __tablename__ = "plans"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="NGN")
    billing_cycle: Mapped[str] = mapped_column(String(16), nullable=False, default="monthly")
    features: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    quality: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    resolution: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    screens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    devices: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        # One live plan per display name; deactivated rows keep their name.
        Index(
            "uq_plans_active_name",
            "name",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Plan {self.id} name={self.name} active={self.is_active}>"
