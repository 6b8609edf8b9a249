"""Billing service wiring: build services around the request session and shared gateway."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.stripe_client import BillingGateway, get_billing_gateway
from app.database import get_db
from app.services.plan_service import PlanCatalog
from app.services.subscription_service import SubscriptionManager


async def get_plan_catalog(
    db: AsyncSession = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
) -> PlanCatalog:
    return PlanCatalog(db, gateway)


async def get_subscription_manager(
    db: AsyncSession = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
) -> SubscriptionManager:
    return SubscriptionManager(db, gateway)
