"""Shared API dependencies: single import point for all routers.

Re-exports database session, authentication and billing service dependencies
so that router modules can import everything they need from one place::

    from app.api.deps import get_db, get_current_active_user, get_subscription_manager
"""

from app.auth.dependencies import (
    get_current_active_user,
    get_current_user,
    require_admin,
)
from app.billing.dependencies import get_plan_catalog, get_subscription_manager
from app.billing.stripe_client import get_billing_gateway
from app.database import get_db

__all__ = [
    "get_db",
    "get_current_user",
    "get_current_active_user",
    "require_admin",
    "get_billing_gateway",
    "get_plan_catalog",
    "get_subscription_manager",
]
