"""Tests for Stripe webhook handler functions with fake Stripe events."""

import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.webhooks import (
    ProviderSubscriptionStatus,
    handle_payment_intent_failed,
    handle_payment_intent_succeeded,
    handle_subscription_deleted,
    handle_subscription_updated,
)
from app.database import utcnow
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User


def _make_event(event_type: str, **data_object) -> SimpleNamespace:
    """Create a fake Stripe Event-like object."""
    return SimpleNamespace(
        type=event_type,
        id=f"evt_test_{uuid.uuid4().hex[:8]}",
        data=SimpleNamespace(object=SimpleNamespace(**data_object)),
    )


def _intent_event(event_type: str, subscription: Subscription | None, intent_id: str = "pi_hook") -> SimpleNamespace:
    metadata = {"subscription_id": str(subscription.id)} if subscription else {}
    return _make_event(event_type, id=intent_id, metadata=metadata, status="succeeded")


async def _subscription(
    db_session: AsyncSession,
    user: User,
    plan: SubscriptionPlan,
    status: str = "incomplete",
    stripe_subscription_id: str | None = None,
) -> Subscription:
    subscription = Subscription(
        user_id=user.id,
        plan_id=plan.id,
        status=status,
        start_date=utcnow(),
        stripe_subscription_id=stripe_subscription_id,
        plan=plan,
    )
    db_session.add(subscription)
    await db_session.commit()
    return subscription


class TestProviderStatus:
    def test_known_status_maps_to_local(self):
        assert ProviderSubscriptionStatus.parse("past_due").local_status == SubscriptionStatus.PAST_DUE

    @pytest.mark.parametrize("raw", ["paused", "", None])
    def test_unknown_status(self, raw):
        status = ProviderSubscriptionStatus.parse(raw)
        assert status is ProviderSubscriptionStatus.UNKNOWN
        assert status.local_status is None


class TestPaymentIntentSucceeded:
    async def test_activates_incomplete_subscription(self, db_session, candidate, paid_plan):
        subscription = await _subscription(db_session, candidate, paid_plan)

        await handle_payment_intent_succeeded(db_session, _intent_event("payment_intent.succeeded", subscription))

        assert subscription.status == "active"
        assert subscription.end_date is not None
        assert subscription.stripe_payment_intent_id == "pi_hook"

    async def test_redelivery_is_idempotent(self, db_session, candidate, paid_plan):
        subscription = await _subscription(db_session, candidate, paid_plan)
        event = _intent_event("payment_intent.succeeded", subscription)

        await handle_payment_intent_succeeded(db_session, event)
        end_date = subscription.end_date
        await handle_payment_intent_succeeded(db_session, event)

        assert subscription.status == "active"
        assert subscription.end_date == end_date

    async def test_does_not_revive_canceled(self, db_session, candidate, paid_plan):
        subscription = await _subscription(db_session, candidate, paid_plan, status="canceled")

        await handle_payment_intent_succeeded(db_session, _intent_event("payment_intent.succeeded", subscription))

        assert subscription.status == "canceled"

    async def test_reactivates_past_due(self, db_session, candidate, paid_plan):
        subscription = await _subscription(db_session, candidate, paid_plan, status="past_due")

        await handle_payment_intent_succeeded(db_session, _intent_event("payment_intent.succeeded", subscription))

        assert subscription.status == "active"

    async def test_missing_metadata_ignored(self, db_session):
        await handle_payment_intent_succeeded(db_session, _intent_event("payment_intent.succeeded", None))

    async def test_unknown_subscription_ignored(self, db_session):
        event = _make_event(
            "payment_intent.succeeded", id="pi_x", metadata={"subscription_id": str(uuid.uuid4())}
        )
        await handle_payment_intent_succeeded(db_session, event)

    async def test_malformed_subscription_id_ignored(self, db_session):
        event = _make_event("payment_intent.succeeded", id="pi_x", metadata={"subscription_id": "not-a-uuid"})
        await handle_payment_intent_succeeded(db_session, event)


class TestPaymentIntentFailed:
    async def test_expires_incomplete(self, db_session, candidate, paid_plan):
        subscription = await _subscription(db_session, candidate, paid_plan)

        await handle_payment_intent_failed(db_session, _intent_event("payment_intent.payment_failed", subscription))

        assert subscription.status == "incomplete_expired"

    async def test_leaves_active_alone(self, db_session, candidate, paid_plan):
        subscription = await _subscription(db_session, candidate, paid_plan, status="active")

        await handle_payment_intent_failed(db_session, _intent_event("payment_intent.payment_failed", subscription))

        assert subscription.status == "active"


class TestSubscriptionUpdated:
    async def test_past_due_applies_only_to_matching_row(self, db_session, candidate, employer, paid_plan):
        target = await _subscription(db_session, candidate, paid_plan, status="active", stripe_subscription_id="sub_a")
        other = await _subscription(db_session, employer, paid_plan, status="active", stripe_subscription_id="sub_b")

        await handle_subscription_updated(
            db_session,
            _make_event("customer.subscription.updated", id="sub_a", status="past_due", cancel_at_period_end=False),
        )

        assert target.status == "past_due"
        assert other.status == "active"

    async def test_unknown_status_ignored(self, db_session, candidate, paid_plan):
        subscription = await _subscription(
            db_session, candidate, paid_plan, status="active", stripe_subscription_id="sub_a"
        )

        await handle_subscription_updated(
            db_session, _make_event("customer.subscription.updated", id="sub_a", status="paused")
        )

        assert subscription.status == "active"

    async def test_syncs_cancel_at_period_end(self, db_session, candidate, paid_plan):
        subscription = await _subscription(
            db_session, candidate, paid_plan, status="active", stripe_subscription_id="sub_a"
        )

        await handle_subscription_updated(
            db_session,
            _make_event("customer.subscription.updated", id="sub_a", status="active", cancel_at_period_end=True),
        )

        assert subscription.cancel_at_period_end is True

    async def test_canceled_row_not_reopened(self, db_session, candidate, paid_plan):
        subscription = await _subscription(
            db_session, candidate, paid_plan, status="canceled", stripe_subscription_id="sub_a"
        )

        await handle_subscription_updated(
            db_session, _make_event("customer.subscription.updated", id="sub_a", status="active")
        )

        assert subscription.status == "canceled"

    async def test_unknown_stripe_subscription_ignored(self, db_session):
        await handle_subscription_updated(
            db_session, _make_event("customer.subscription.updated", id="sub_nope", status="active")
        )


class TestSubscriptionDeleted:
    async def test_marks_canceled(self, db_session, candidate, paid_plan):
        subscription = await _subscription(
            db_session, candidate, paid_plan, status="active", stripe_subscription_id="sub_a"
        )

        await handle_subscription_deleted(db_session, _make_event("customer.subscription.deleted", id="sub_a"))

        assert subscription.status == "canceled"
        assert subscription.canceled_at is not None

    async def test_keeps_original_canceled_at(self, db_session, candidate, paid_plan):
        subscription = await _subscription(
            db_session, candidate, paid_plan, status="active", stripe_subscription_id="sub_a"
        )
        event = _make_event("customer.subscription.deleted", id="sub_a")

        await handle_subscription_deleted(db_session, event)
        first = subscription.canceled_at
        await handle_subscription_deleted(db_session, event)

        assert subscription.canceled_at == first
