"""SQLAlchemy models for the job board billing service.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from app.models.subscription import Subscription, SubscriptionStatus
from app.models.subscription_plan import PlanInterval, PlanStatus, SubscriptionPlan
from app.models.user import User, UserRole

__all__ = [
    "PlanInterval",
    "PlanStatus",
    "Subscription",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "User",
    "UserRole",
]
