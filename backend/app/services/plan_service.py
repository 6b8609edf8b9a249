"""Plan catalog: CRUD over subscription plans mirrored into Stripe."""

import logging
import re
import uuid
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.exceptions import NotFoundError, ValidationError
from app.billing.stripe_client import BillingGateway
from app.database import utcnow
from app.models.subscription_plan import PlanInterval, PlanStatus, SubscriptionPlan
from app.schemas.billing import PlanCreate, PlanUpdate

logger = logging.getLogger(__name__)

_CURRENCY_RE = re.compile(r"^[a-z]{3}$")
_VALID_INTERVALS = {i.value for i in PlanInterval}
# Archiving goes through archive_plan so deleted_at and the Stripe product stay in step
_SETTABLE_STATUSES = {PlanStatus.ACTIVE.value, PlanStatus.INACTIVE.value}

# Fields whose change requires a new Stripe price
_PRICE_FIELDS = ("price", "currency", "interval", "interval_count")


def _validate_pricing(price: Decimal, currency: str, interval: str, interval_count: int) -> None:
    if price < 0:
        raise ValidationError("Plan price must be greater than or equal to 0")
    if interval not in _VALID_INTERVALS:
        raise ValidationError(
            f"Invalid interval {interval!r}. Choose one of: {', '.join(sorted(_VALID_INTERVALS))}"
        )
    if interval_count < 1:
        raise ValidationError("Plan interval_count must be at least 1")
    if not _CURRENCY_RE.match(currency):
        raise ValidationError(f"Invalid currency {currency!r}. Use a 3-letter ISO code")


def _needs_billing(price: Decimal, skip_billing: bool) -> bool:
    """Only zero-priced plans flagged skip_billing stay out of Stripe."""
    return not (price == 0 and skip_billing)


class PlanCatalog:
    """Plan definitions and their Stripe product/price pair."""

    def __init__(self, db: AsyncSession, gateway: BillingGateway) -> None:
        self.db = db
        self.gateway = gateway

    async def create_plan(self, data: PlanCreate) -> SubscriptionPlan:
        """Create a plan, creating the Stripe product and price first.

        Provider calls happen before anything is added to the session, so a
        ``GatewayError`` leaves no local state behind.
        """
        currency = data.currency.lower()
        _validate_pricing(data.price, currency, data.interval, data.interval_count)
        if data.status not in _SETTABLE_STATUSES:
            raise ValidationError(f"Invalid plan status {data.status!r}")

        product_id: str | None = None
        price_id: str | None = None
        if _needs_billing(data.price, data.skip_billing):
            product = await self.gateway.create_product(data.name, data.description)
            price = await self.gateway.create_price(
                product.id, data.price, currency, data.interval, data.interval_count
            )
            product_id, price_id = product.id, price.id
        else:
            logger.info("Plan %r is free with skip_billing; not mirrored to Stripe", data.name)

        plan = SubscriptionPlan(
            **data.model_dump(exclude={"currency"}),
            currency=currency,
            stripe_product_id=product_id,
            stripe_price_id=price_id,
        )
        self.db.add(plan)
        await self.db.flush()
        await self.db.refresh(plan)
        logger.info("Created subscription plan %s (%s)", plan.id, plan.name)
        return plan

    async def list_plans(
        self,
        status: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[SubscriptionPlan], int]:
        """Return a page of non-deleted plans (newest first) and the total count."""
        filters = [SubscriptionPlan.deleted_at.is_(None)]
        if status is not None:
            filters.append(SubscriptionPlan.status == status)

        total_result = await self.db.execute(
            select(func.count()).select_from(SubscriptionPlan).where(*filters)
        )
        total = total_result.scalar_one()

        result = await self.db.execute(
            select(SubscriptionPlan)
            .where(*filters)
            .order_by(SubscriptionPlan.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_plan(self, plan_id: uuid.UUID) -> SubscriptionPlan:
        """Return a non-deleted plan or raise NotFoundError."""
        result = await self.db.execute(
            select(SubscriptionPlan).where(
                SubscriptionPlan.id == plan_id,
                SubscriptionPlan.deleted_at.is_(None),
            )
        )
        plan = result.scalar_one_or_none()
        if plan is None:
            raise NotFoundError(f"Subscription plan with ID {plan_id} not found")
        return plan

    async def update_plan(self, plan_id: uuid.UUID, patch: PlanUpdate) -> SubscriptionPlan:
        """Apply a partial update.

        Name/description are pushed to the Stripe product in place. A change
        to any pricing field mints a new Stripe price and swaps the stored
        reference; the old price is left alone for existing subscriptions.
        """
        plan = await self.get_plan(plan_id)
        changes = patch.model_dump(exclude_unset=True)
        if "currency" in changes and changes["currency"] is not None:
            changes["currency"] = changes["currency"].lower()
        # Explicit nulls on required columns mean "leave as is"
        changes = {
            k: v for k, v in changes.items() if v is not None or k in ("description", "features")
        }
        if "status" in changes and changes["status"] not in _SETTABLE_STATUSES:
            raise ValidationError(f"Invalid plan status {changes['status']!r}")

        name = changes.get("name", plan.name)
        description = changes.get("description", plan.description)
        price = changes.get("price", plan.price)
        currency = changes.get("currency", plan.currency)
        interval = changes.get("interval", plan.interval)
        interval_count = changes.get("interval_count", plan.interval_count)
        skip_billing = changes.get("skip_billing", plan.skip_billing)
        _validate_pricing(price, currency, interval, interval_count)

        pricing_changed = any(
            field in changes and changes[field] != getattr(plan, field) for field in _PRICE_FIELDS
        )
        product_changed = "name" in changes or "description" in changes

        if _needs_billing(price, skip_billing):
            if plan.stripe_product_id is None:
                # Plan was stored without Stripe and has just become billable
                product = await self.gateway.create_product(name, description)
                changes["stripe_product_id"] = product.id
                pricing_changed = True
            elif product_changed:
                await self.gateway.update_product(plan.stripe_product_id, name, description)

            if pricing_changed or plan.stripe_price_id is None:
                new_price = await self.gateway.create_price(
                    changes.get("stripe_product_id", plan.stripe_product_id),
                    price,
                    currency,
                    interval,
                    interval_count,
                )
                logger.info(
                    "Rotated Stripe price for plan %s: %s -> %s",
                    plan.id,
                    plan.stripe_price_id,
                    new_price.id,
                )
                changes["stripe_price_id"] = new_price.id

        for field, value in changes.items():
            setattr(plan, field, value)
        await self.db.flush()
        await self.db.refresh(plan)
        logger.info("Updated subscription plan %s", plan.id)
        return plan

    async def archive_plan(self, plan_id: uuid.UUID) -> SubscriptionPlan:
        """Soft-delete a plan and deactivate its Stripe product. Idempotent."""
        result = await self.db.execute(select(SubscriptionPlan).where(SubscriptionPlan.id == plan_id))
        plan = result.scalar_one_or_none()
        if plan is None:
            raise NotFoundError(f"Subscription plan with ID {plan_id} not found")

        if plan.status == PlanStatus.ARCHIVED.value and plan.deleted_at is not None:
            logger.debug("Plan %s already archived", plan.id)
            return plan

        if plan.stripe_product_id:
            await self.gateway.archive_product(plan.stripe_product_id)

        plan.status = PlanStatus.ARCHIVED.value
        plan.deleted_at = utcnow()
        await self.db.flush()
        await self.db.refresh(plan)
        logger.info("Archived subscription plan %s", plan.id)
        return plan
