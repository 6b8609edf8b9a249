"""Subscription plan model: purchasable recurring offering mirrored into Stripe."""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Integer, Numeric, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class PlanInterval(str, enum.Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class PlanStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class SubscriptionPlan(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A plan definition. Archived plans are soft-deleted so old subscriptions keep their FK."""

    __tablename__ = "subscription_plans"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    interval: Mapped[str] = mapped_column(String(10), nullable=False, default=PlanInterval.MONTH.value)
    interval_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Stripe identifiers (None for plans stored with skip_billing)
    stripe_product_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_price_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    features: Mapped[list | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PlanStatus.ACTIVE.value)
    skip_billing: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_free(self) -> bool:
        """True when confirmation needs no payment at the provider."""
        return self.price == 0 or self.skip_billing

    def __repr__(self) -> str:
        return f"<SubscriptionPlan(id={self.id}, name={self.name!r}, price={self.price} {self.currency}/{self.interval})>"
