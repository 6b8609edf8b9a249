"""Subscription lifecycle: create, confirm, cancel and look up user subscriptions.

State machine::

    [none] --create--> incomplete --confirm(success)--> active
    incomplete --confirm(payment canceled)--> incomplete_expired
    active --cancel--> canceled

Webhook-driven transitions (past_due, unpaid, provider deletion) live in
``app.billing.webhooks`` and reuse the lookups and ``activate`` defined here.
"""

import calendar
import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import func, inspect, select
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.exceptions import (
    ConflictError,
    NotFoundError,
    PaymentIncompleteError,
    ValidationError,
)
from app.billing.stripe_client import BillingGateway, to_minor_units
from app.database import utcnow
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.subscription_plan import PlanInterval, PlanStatus, SubscriptionPlan
from app.models.user import User
from app.schemas.billing import CheckoutResponse, PlanSummary

logger = logging.getLogger(__name__)

ACTIVE = SubscriptionStatus.ACTIVE.value
INCOMPLETE = SubscriptionStatus.INCOMPLETE.value


# ---------------------------------------------------------------------------
# Billing period arithmetic
# ---------------------------------------------------------------------------


def _add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def calculate_end_date(start: datetime, interval: str, count: int) -> datetime:
    """End of the first billing period starting at ``start``.

    >>> calculate_end_date(datetime(2024, 1, 31), "month", 1)
    datetime.datetime(2024, 2, 29, 0, 0)

    Unrecognised intervals fall back to one month.
    """
    if interval == PlanInterval.DAY.value:
        return start + timedelta(days=count)
    if interval == PlanInterval.WEEK.value:
        return start + timedelta(weeks=count)
    if interval == PlanInterval.MONTH.value:
        return _add_months(start, count)
    if interval == PlanInterval.YEAR.value:
        return _add_months(start, 12 * count)
    logger.warning("Unknown plan interval %r, defaulting to one month", interval)
    return _add_months(start, 1)


def activate(subscription: Subscription, plan: SubscriptionPlan, now: datetime | None = None) -> None:
    """Mark a subscription active for one billing period starting now."""
    start = now or utcnow()
    subscription.status = ACTIVE
    subscription.start_date = start
    subscription.end_date = calculate_end_date(start, plan.interval, plan.interval_count)


# ---------------------------------------------------------------------------
# Lookups (also used by webhook handlers)
# ---------------------------------------------------------------------------


async def get_subscription_by_id(db: AsyncSession, subscription_id: uuid.UUID) -> Subscription | None:
    result = await db.execute(select(Subscription).where(Subscription.id == subscription_id))
    return result.scalar_one_or_none()


async def get_subscription_by_stripe_subscription(
    db: AsyncSession, stripe_subscription_id: str
) -> Subscription | None:
    """Look up subscription by Stripe subscription ID (used by webhooks)."""
    result = await db.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
    )
    return result.scalar_one_or_none()


async def get_active_subscription(
    db: AsyncSession,
    user_id: uuid.UUID,
    plan_id: uuid.UUID,
    exclude_id: uuid.UUID | None = None,
) -> Subscription | None:
    """The user's active subscription to a plan, if any."""
    query = select(Subscription).where(
        Subscription.user_id == user_id,
        Subscription.plan_id == plan_id,
        Subscription.status == ACTIVE,
    )
    if exclude_id is not None:
        query = query.where(Subscription.id != exclude_id)
    result = await db.execute(query)
    return result.scalars().first()


def _object_id(value) -> str | None:
    """Stripe fields may hold an ID string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return value.id


# ---------------------------------------------------------------------------
# Lifecycle manager
# ---------------------------------------------------------------------------


class SubscriptionManager:
    """Runs the subscription state machine against the local DB and Stripe.

    Every method works inside the caller's session; the request-scoped
    ``get_db`` dependency commits or rolls back the whole operation. Stripe
    calls are not part of that transaction and are not compensated.
    """

    def __init__(self, db: AsyncSession, gateway: BillingGateway) -> None:
        self.db = db
        self.gateway = gateway

    # -- helpers -----------------------------------------------------------

    async def _get_purchasable_plan(self, plan_id: uuid.UUID) -> SubscriptionPlan:
        result = await self.db.execute(
            select(SubscriptionPlan).where(
                SubscriptionPlan.id == plan_id,
                SubscriptionPlan.status == PlanStatus.ACTIVE.value,
                SubscriptionPlan.deleted_at.is_(None),
            )
        )
        plan = result.scalar_one_or_none()
        if plan is None:
            raise NotFoundError("Subscription plan not found or inactive")
        return plan

    async def _get_owned(self, user: User, subscription_id: uuid.UUID) -> Subscription:
        result = await self.db.execute(
            select(Subscription).where(
                Subscription.id == subscription_id,
                Subscription.user_id == user.id,
            )
        )
        subscription = result.scalar_one_or_none()
        if subscription is None:
            raise NotFoundError("Subscription not found")
        if "plan" in inspect(subscription).unloaded:
            await self.db.refresh(subscription, attribute_names=["plan"])
        return subscription

    async def _guard_activation(self, subscription: Subscription) -> None:
        if subscription.is_terminal:
            raise ConflictError(
                f"Subscription is {subscription.status} and can no longer be activated. Start a new subscription."
            )
        other = await get_active_subscription(
            self.db, subscription.user_id, subscription.plan_id, exclude_id=subscription.id
        )
        if other is not None:
            raise ConflictError("You already have an active subscription to this plan")

    async def _flush_activation(self) -> None:
        """Flush an activation, translating the partial unique index into a Conflict."""
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ConflictError("You already have an active subscription to this plan") from e

    async def ensure_customer(self, user: User) -> str:
        """Return the user's Stripe customer ID, creating the customer on first use.

        Persisting the new ID is best-effort: a stale ``users`` table without
        the column is logged and the customer ID is still returned.
        """
        if user.stripe_customer_id:
            return user.stripe_customer_id

        # A failed savepoint expires user, so nothing below may touch its attributes
        user_id = user.id
        customer = await self.gateway.create_customer(
            email=user.email,
            name=user.full_name or user.email,
            user_id=str(user_id),
        )
        customer_id = customer.id
        try:
            async with self.db.begin_nested():
                user.stripe_customer_id = customer_id
                await self.db.flush()
        except (ProgrammingError, OperationalError) as e:
            logger.warning(
                "Could not store Stripe customer %s on user %s (%s); continuing",
                customer_id,
                user_id,
                e.orig if hasattr(e, "orig") else e,
            )
        else:
            logger.info("Linked Stripe customer %s to user %s", customer_id, user_id)
        return customer_id

    async def _ensure_default_payment_method(self, customer_id: str, payment_method_id: str | None) -> None:
        """Make the card used for this payment the customer's default, if none is set."""
        if not payment_method_id:
            return
        customer = await self.gateway.retrieve_customer(customer_id)
        invoice_settings = getattr(customer, "invoice_settings", None)
        current = _object_id(getattr(invoice_settings, "default_payment_method", None)) if invoice_settings else None
        if current:
            return
        await self.gateway.attach_payment_method(customer_id, payment_method_id)
        await self.gateway.set_default_payment_method(customer_id, payment_method_id)

    # -- operations --------------------------------------------------------

    async def create_subscription(self, user: User, plan_id: uuid.UUID) -> CheckoutResponse:
        """Start a subscription: an ``incomplete`` row plus a payment intent.

        Free and skip-billing plans get the row only; the client then confirms
        without a payment intent.
        """
        user_id = user.id
        plan = await self._get_purchasable_plan(plan_id)

        if await get_active_subscription(self.db, user_id, plan.id) is not None:
            raise ConflictError("You already have an active subscription to this plan")

        subscription = Subscription(
            user_id=user_id,
            plan_id=plan.id,
            status=INCOMPLETE,
            start_date=utcnow(),
            plan=plan,
        )

        if plan.is_free:
            self.db.add(subscription)
            await self.db.flush()
            logger.info("Created free subscription %s for user %s (plan %s)", subscription.id, user_id, plan.id)
            return CheckoutResponse(
                subscription_id=subscription.id,
                client_secret=None,
                requires_payment=False,
                plan=PlanSummary.model_validate(plan),
            )

        customer_id = await self.ensure_customer(user)
        subscription.stripe_customer_id = customer_id
        self.db.add(subscription)
        await self.db.flush()

        intent = await self.gateway.create_payment_intent(
            amount=to_minor_units(plan.price),
            currency=plan.currency,
            customer_id=customer_id,
            metadata={
                "subscription_id": str(subscription.id),
                "plan_id": str(plan.id),
                "user_id": str(user_id),
            },
        )
        subscription.stripe_payment_intent_id = intent.id
        await self.db.flush()

        logger.info(
            "Created subscription %s for user %s (plan %s, payment intent %s)",
            subscription.id,
            user_id,
            plan.id,
            intent.id,
        )
        return CheckoutResponse(
            subscription_id=subscription.id,
            client_secret=intent.client_secret,
            requires_payment=True,
            plan=PlanSummary.model_validate(plan),
        )

    async def confirm(
        self,
        user: User,
        subscription_id: uuid.UUID,
        payment_intent_id: str | None = None,
    ) -> Subscription:
        """Route a confirmation to the free or paid path based on the plan."""
        subscription = await self._get_owned(user, subscription_id)
        if subscription.plan.is_free:
            return await self.confirm_free_subscription(user, subscription_id)
        if subscription.status == ACTIVE and subscription.stripe_subscription_id:
            return subscription
        if not payment_intent_id:
            raise ValidationError("payment_intent_id is required for paid plans")
        return await self.confirm_subscription(user, subscription_id, payment_intent_id)

    async def confirm_free_subscription(self, user: User, subscription_id: uuid.UUID) -> Subscription:
        """Activate a free / skip-billing subscription without touching Stripe."""
        subscription = await self._get_owned(user, subscription_id)
        plan = subscription.plan
        if not plan.is_free:
            raise ValidationError("This plan requires payment")
        if subscription.status == ACTIVE:
            return subscription

        await self._guard_activation(subscription)
        activate(subscription, plan)
        await self._flush_activation()
        logger.info("Activated free subscription %s until %s", subscription.id, subscription.end_date)
        return subscription

    async def confirm_subscription(
        self,
        user: User,
        subscription_id: uuid.UUID,
        payment_intent_id: str,
    ) -> Subscription:
        """Verify the payment with Stripe, create the recurring subscription, activate.

        A subscription that is already active and linked to Stripe is returned
        unchanged. One activated by the ``payment_intent.succeeded`` webhook
        before this call still gets its Stripe subscription created here.
        """
        subscription = await self._get_owned(user, subscription_id)
        plan = subscription.plan

        if subscription.status == ACTIVE and subscription.stripe_subscription_id:
            return subscription
        await self._guard_activation(subscription)

        if subscription.stripe_payment_intent_id and subscription.stripe_payment_intent_id != payment_intent_id:
            raise ValidationError("Payment intent does not belong to this subscription")
        if not plan.stripe_price_id:
            raise ValidationError("Subscription plan is not configured for billing")

        intent = await self.gateway.retrieve_payment_intent(payment_intent_id)
        if intent.status != "succeeded":
            if intent.status == "canceled":
                # The payment can never complete; close this attempt for good.
                # Committed ahead of the request: get_db rolls back once the error
                # below propagates, and the expiry must survive that.
                subscription.status = SubscriptionStatus.INCOMPLETE_EXPIRED.value
                await self.db.commit()
                logger.info("Subscription %s expired: payment intent %s canceled", subscription.id, intent.id)
            raise PaymentIncompleteError(
                f"Payment not successful. Status: {intent.status}",
                payment_status=intent.status,
            )

        customer_id = subscription.stripe_customer_id or await self.ensure_customer(user)
        payment_method_id = _object_id(getattr(intent, "payment_method", None))
        await self._ensure_default_payment_method(customer_id, payment_method_id)

        stripe_sub = await self.gateway.create_subscription(
            customer_id=customer_id,
            price_id=plan.stripe_price_id,
            payment_method_id=payment_method_id,
            metadata={"subscription_id": str(subscription.id)},
        )

        subscription.stripe_customer_id = customer_id
        subscription.stripe_subscription_id = stripe_sub.id
        activate(subscription, plan)
        await self._flush_activation()
        logger.info(
            "Confirmed subscription %s (Stripe %s) until %s",
            subscription.id,
            stripe_sub.id,
            subscription.end_date,
        )
        return subscription

    async def cancel_subscription(self, user: User, subscription_id: uuid.UUID) -> Subscription:
        """Cancel the caller's active subscription locally and at Stripe."""
        result = await self.db.execute(
            select(Subscription).where(
                Subscription.id == subscription_id,
                Subscription.user_id == user.id,
                Subscription.status == ACTIVE,
            )
        )
        subscription = result.scalar_one_or_none()
        if subscription is None:
            raise NotFoundError("Active subscription not found")

        if subscription.stripe_subscription_id:
            await self.gateway.cancel_subscription(subscription.stripe_subscription_id)

        subscription.status = SubscriptionStatus.CANCELED.value
        subscription.cancel_at_period_end = True
        subscription.canceled_at = utcnow()
        await self.db.flush()
        logger.info("Canceled subscription %s for user %s", subscription.id, user.id)
        return subscription

    async def attach_payment_method(self, user: User, payment_method_id: str) -> str:
        """Attach a card to the caller's Stripe customer and make it the default.

        Returns the customer ID.
        """
        customer_id = await self.ensure_customer(user)
        await self.gateway.attach_payment_method(customer_id, payment_method_id)
        await self.gateway.set_default_payment_method(customer_id, payment_method_id)
        return customer_id

    # -- reads ---------------------------------------------------------------

    async def list_user_subscriptions(self, user: User) -> list[Subscription]:
        """The caller's active subscriptions, newest first."""
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user.id, Subscription.status == ACTIVE)
            .order_by(Subscription.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_user_subscription(self, user: User, subscription_id: uuid.UUID) -> Subscription:
        return await self._get_owned(user, subscription_id)

    async def list_subscriptions(
        self,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Subscription], int]:
        """All subscriptions (admin view), optionally filtered by status."""
        filters = []
        if status is not None:
            filters.append(Subscription.status == status)

        total_result = await self.db.execute(
            select(func.count()).select_from(Subscription).where(*filters)
        )
        total = total_result.scalar_one()

        result = await self.db.execute(
            select(Subscription)
            .where(*filters)
            .order_by(Subscription.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total
