"""Stripe webhook event handlers: reconcile local subscription state.

Handlers only ever assign statuses, so redelivering the same event leaves the
row unchanged.
"""

import enum
import logging
import uuid

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import utcnow
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.subscription_plan import SubscriptionPlan
from app.services.subscription_service import (
    activate,
    get_subscription_by_id,
    get_subscription_by_stripe_subscription,
)

logger = logging.getLogger(__name__)


class ProviderSubscriptionStatus(str, enum.Enum):
    """Subscription statuses Stripe reports, plus UNKNOWN for anything else."""

    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "ProviderSubscriptionStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def local_status(self) -> SubscriptionStatus | None:
        """Matching local status; None for UNKNOWN."""
        if self is ProviderSubscriptionStatus.UNKNOWN:
            return None
        return SubscriptionStatus(self.value)


async def _subscription_from_metadata(db: AsyncSession, payment_intent) -> Subscription | None:
    """Resolve the local subscription a payment intent was created for."""
    metadata = getattr(payment_intent, "metadata", None) or {}
    raw_id = metadata.get("subscription_id")
    if not raw_id:
        logger.info("Payment intent %s carries no subscription_id, skipping", payment_intent.id)
        return None

    try:
        subscription_id = uuid.UUID(raw_id)
    except ValueError:
        logger.warning("Payment intent %s has malformed subscription_id %r", payment_intent.id, raw_id)
        return None

    subscription = await get_subscription_by_id(db, subscription_id)
    if subscription is None:
        logger.warning(
            "No local subscription %s found for payment intent %s",
            subscription_id,
            payment_intent.id,
        )
    return subscription


async def handle_payment_intent_succeeded(db: AsyncSession, event: stripe.Event) -> None:
    """Handle payment_intent.succeeded: activate the referenced subscription."""
    intent = event.data.object
    subscription = await _subscription_from_metadata(db, intent)
    if subscription is None:
        return

    if subscription.status == SubscriptionStatus.ACTIVE.value:
        logger.debug("Subscription %s already active", subscription.id)
        return
    if subscription.is_terminal:
        logger.warning(
            "Payment intent %s succeeded for %s subscription %s; not reactivating",
            intent.id,
            subscription.status,
            subscription.id,
        )
        return

    if subscription.status == SubscriptionStatus.INCOMPLETE.value:
        # Webhook beat the confirm call: open the first billing period here.
        plan = await db.get(SubscriptionPlan, subscription.plan_id)
        activate(subscription, plan)
    else:
        subscription.status = SubscriptionStatus.ACTIVE.value
    if subscription.stripe_payment_intent_id is None:
        subscription.stripe_payment_intent_id = intent.id
    await db.flush()
    logger.info("Payment succeeded: subscription %s marked active", subscription.id)


async def handle_payment_intent_failed(db: AsyncSession, event: stripe.Event) -> None:
    """Handle payment_intent.payment_failed: expire the pending subscription."""
    intent = event.data.object
    subscription = await _subscription_from_metadata(db, intent)
    if subscription is None:
        return

    if subscription.status != SubscriptionStatus.INCOMPLETE.value:
        logger.info(
            "Payment intent %s failed but subscription %s is %s; leaving as is",
            intent.id,
            subscription.id,
            subscription.status,
        )
        return

    subscription.status = SubscriptionStatus.INCOMPLETE_EXPIRED.value
    await db.flush()
    logger.info("Payment failed: subscription %s marked incomplete_expired", subscription.id)


async def handle_subscription_deleted(db: AsyncSession, event: stripe.Event) -> None:
    """Handle customer.subscription.deleted: mark the local row canceled."""
    stripe_sub = event.data.object

    subscription = await get_subscription_by_stripe_subscription(db, stripe_sub.id)
    if subscription is None:
        logger.warning(
            "No local subscription found for Stripe subscription %s (delete event)",
            stripe_sub.id,
        )
        return

    subscription.status = SubscriptionStatus.CANCELED.value
    if subscription.canceled_at is None:
        subscription.canceled_at = utcnow()
    await db.flush()
    logger.info("Subscription deleted: %s marked canceled", stripe_sub.id)


async def handle_subscription_updated(db: AsyncSession, event: stripe.Event) -> None:
    """Handle customer.subscription.updated: relay Stripe's status onto the local row."""
    stripe_sub = event.data.object
    provider_status = ProviderSubscriptionStatus.parse(stripe_sub.status)
    new_status = provider_status.local_status

    if new_status is None:
        logger.warning(
            "Ignoring unmapped Stripe status %r for subscription %s",
            stripe_sub.status,
            stripe_sub.id,
        )
        return

    subscription = await get_subscription_by_stripe_subscription(db, stripe_sub.id)
    if subscription is None:
        logger.warning("No local subscription found for Stripe subscription %s", stripe_sub.id)
        return

    if subscription.is_terminal and subscription.status != new_status.value:
        logger.warning(
            "Subscription %s is %s; ignoring Stripe status %s",
            subscription.id,
            subscription.status,
            new_status.value,
        )
        return

    subscription.status = new_status.value
    cancel_at_period_end = getattr(stripe_sub, "cancel_at_period_end", None)
    if cancel_at_period_end is not None:
        subscription.cancel_at_period_end = bool(cancel_at_period_end)
    await db.flush()
    logger.info("Subscription updated: %s -> status=%s", stripe_sub.id, new_status.value)
