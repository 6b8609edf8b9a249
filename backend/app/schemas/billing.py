"""Pydantic v2 request/response schemas for plan, subscription and webhook endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.config import settings

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class PlanCreate(BaseModel):
    """Schema for creating a subscription plan (admin)."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    price: Decimal
    currency: str = Field(default_factory=lambda: settings.default_currency)
    interval: str = "month"  # day, week, month, year
    interval_count: int = 1
    features: list[str] | None = None
    status: str = "active"  # active, inactive
    skip_billing: bool = False


class PlanUpdate(BaseModel):
    """Schema for partially updating a plan. All fields optional."""

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    price: Decimal | None = None
    currency: str | None = None
    interval: str | None = None
    interval_count: int | None = None
    features: list[str] | None = None
    status: str | None = None  # active, inactive; archive via DELETE
    skip_billing: bool | None = None


class SubscriptionCreateRequest(BaseModel):
    """Request to start a subscription to a plan."""

    plan_id: uuid.UUID


class SubscriptionConfirmRequest(BaseModel):
    """Confirm a pending subscription. The payment intent is omitted for free plans."""

    payment_intent_id: str | None = None


class AttachPaymentMethodRequest(BaseModel):
    """Attach a Stripe payment method to the caller's customer record."""

    payment_method_id: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class PlanResponse(BaseModel):
    """Plan details for display."""

    id: uuid.UUID
    name: str
    description: str | None = None
    price: Decimal
    currency: str
    interval: str
    interval_count: int
    features: list[str] | None = None
    status: str
    skip_billing: bool
    stripe_product_id: str | None = None
    stripe_price_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlanListResponse(BaseModel):
    """Paginated list of plans."""

    items: list[PlanResponse]
    total: int


class PlanSummary(BaseModel):
    """Compact plan description returned alongside a subscription."""

    id: uuid.UUID
    name: str
    price: Decimal
    currency: str
    interval: str
    interval_count: int

    model_config = ConfigDict(from_attributes=True)


class CheckoutResponse(BaseModel):
    """Result of starting a subscription: what the client needs to pay."""

    subscription_id: uuid.UUID
    client_secret: str | None  # None when no payment is required
    requires_payment: bool
    plan: PlanSummary


class SubscriptionResponse(BaseModel):
    """Subscription state for the owner (or an admin)."""

    id: uuid.UUID
    user_id: uuid.UUID
    plan_id: uuid.UUID
    status: str
    start_date: datetime
    end_date: datetime | None = None
    cancel_at_period_end: bool
    canceled_at: datetime | None = None
    stripe_subscription_id: str | None = None
    plan: PlanSummary | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionListResponse(BaseModel):
    """List of subscriptions."""

    items: list[SubscriptionResponse]
    total: int


class PaymentMethodResponse(BaseModel):
    """Payment method now set as the customer's invoice default."""

    payment_method_id: str
    customer_id: str


class WebhookAck(BaseModel):
    """Acknowledgement returned to Stripe."""

    received: bool
