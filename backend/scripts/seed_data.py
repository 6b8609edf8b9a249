"""Seed the database with an admin account and the default subscription plans.

Plans:
- Candidate Free: free forever, never mirrored to Stripe (skip_billing)
- Employer Starter: $29/month, 3 active job posts
- Employer Pro: $99/month, unlimited job posts, featured listings
- Employer Pro Annual: $990/year

Paid plans are created through the plan catalog, so they get a Stripe product
and price when STRIPE_SECRET_KEY is configured. Without a key they are skipped.

Run:
    python -m scripts.seed_data
"""

import asyncio
import logging
import sys
from decimal import Decimal
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from app.auth.passwords import hash_password
from app.billing.exceptions import BillingError
from app.billing.stripe_client import get_billing_gateway
from app.config import settings
from app.database import async_session_factory, engine
from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User, UserRole
from app.schemas.billing import PlanCreate
from app.services.plan_service import PlanCatalog

logger = logging.getLogger("seed_data")

ADMIN_USER = {
    "email": "admin@jobboard.local",
    "password": "admin1234",
    "first_name": "Board",
    "last_name": "Admin",
}

PLANS = [
    PlanCreate(
        name="Candidate Free",
        description="Browse and apply to unlimited jobs.",
        price=Decimal("0"),
        features=["Unlimited applications", "Saved searches", "Job alerts"],
        skip_billing=True,
    ),
    PlanCreate(
        name="Employer Starter",
        description="For small teams hiring occasionally.",
        price=Decimal("29.00"),
        features=["3 active job posts", "Applicant tracking"],
    ),
    PlanCreate(
        name="Employer Pro",
        description="For growing companies with continuous hiring.",
        price=Decimal("99.00"),
        features=["Unlimited job posts", "Featured listings", "Company profile page"],
    ),
    PlanCreate(
        name="Employer Pro Annual",
        description="Employer Pro, billed yearly.",
        price=Decimal("990.00"),
        interval="year",
        features=["Unlimited job posts", "Featured listings", "Company profile page", "Two months free"],
    ),
]


async def seed() -> None:
    """Create the admin user and any missing plans. Safe to run repeatedly."""
    async with async_session_factory() as session:
        result = await session.execute(select(User).where(User.email == ADMIN_USER["email"]))
        admin = result.scalar_one_or_none()
        if admin is None:
            admin = User(
                email=ADMIN_USER["email"],
                hashed_password=hash_password(ADMIN_USER["password"]),
                first_name=ADMIN_USER["first_name"],
                last_name=ADMIN_USER["last_name"],
                role=UserRole.ADMIN.value,
            )
            session.add(admin)
            await session.flush()
            logger.info("Created admin user %s", admin.email)
        else:
            logger.info("Admin user %s already exists", admin.email)

        catalog = PlanCatalog(session, get_billing_gateway())
        result = await session.execute(
            select(SubscriptionPlan.name).where(SubscriptionPlan.deleted_at.is_(None))
        )
        existing = set(result.scalars().all())

        created = 0
        for plan_data in PLANS:
            if plan_data.name in existing:
                logger.info("Plan %r already exists, skipping", plan_data.name)
                continue
            if not plan_data.skip_billing and not settings.stripe_secret_key:
                logger.warning("STRIPE_SECRET_KEY not set; skipping paid plan %r", plan_data.name)
                continue
            try:
                plan = await catalog.create_plan(plan_data)
            except BillingError as e:
                logger.error("Could not create plan %r: %s", plan_data.name, e.message)
                continue
            created += 1
            logger.info("Created plan %s (%s %s/%s)", plan.name, plan.price, plan.currency, plan.interval)

        await session.commit()

    await engine.dispose()
    logger.info("Seed complete: %d plan(s) created. Log in at /api/v1/auth/login as %s", created, ADMIN_USER["email"])


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(seed())
