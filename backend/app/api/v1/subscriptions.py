"""Subscription routes: checkout, confirmation, cancellation and lookups."""

import uuid

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_current_active_user, get_subscription_manager, require_admin
from app.models.user import User
from app.schemas.billing import (
    AttachPaymentMethodRequest,
    CheckoutResponse,
    PaymentMethodResponse,
    SubscriptionConfirmRequest,
    SubscriptionCreateRequest,
    SubscriptionListResponse,
    SubscriptionResponse,
)
from app.services.subscription_service import SubscriptionManager

router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


@router.post(
    "",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a subscription",
)
async def create_subscription(
    body: SubscriptionCreateRequest,
    manager: SubscriptionManager = Depends(get_subscription_manager),
    current_user: User = Depends(get_current_active_user),
) -> CheckoutResponse:
    """Create an incomplete subscription and, for paid plans, a payment intent."""
    return await manager.create_subscription(current_user, body.plan_id)


@router.get(
    "",
    response_model=SubscriptionListResponse,
    summary="List all subscriptions (admin)",
)
async def list_subscriptions(
    status_filter: str | None = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    manager: SubscriptionManager = Depends(get_subscription_manager),
    _admin: User = Depends(require_admin),
) -> SubscriptionListResponse:
    subscriptions, total = await manager.list_subscriptions(status=status_filter, limit=limit, offset=offset)
    return SubscriptionListResponse(
        items=[SubscriptionResponse.model_validate(s) for s in subscriptions],
        total=total,
    )


# Declared before /{subscription_id} so the literal paths win
@router.get(
    "/my-subscriptions",
    response_model=SubscriptionListResponse,
    summary="List the caller's active subscriptions",
)
async def my_subscriptions(
    manager: SubscriptionManager = Depends(get_subscription_manager),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionListResponse:
    subscriptions = await manager.list_user_subscriptions(current_user)
    return SubscriptionListResponse(
        items=[SubscriptionResponse.model_validate(s) for s in subscriptions],
        total=len(subscriptions),
    )


@router.post(
    "/attach-payment-method",
    response_model=PaymentMethodResponse,
    summary="Attach a payment method to the caller",
)
async def attach_payment_method(
    body: AttachPaymentMethodRequest,
    manager: SubscriptionManager = Depends(get_subscription_manager),
    current_user: User = Depends(get_current_active_user),
) -> PaymentMethodResponse:
    """Attach a card to the caller's Stripe customer and make it the invoice default."""
    customer_id = await manager.attach_payment_method(current_user, body.payment_method_id)
    return PaymentMethodResponse(payment_method_id=body.payment_method_id, customer_id=customer_id)


@router.get(
    "/{subscription_id}",
    response_model=SubscriptionResponse,
    summary="Get one of the caller's subscriptions",
)
async def get_subscription(
    subscription_id: uuid.UUID,
    manager: SubscriptionManager = Depends(get_subscription_manager),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionResponse:
    subscription = await manager.get_user_subscription(current_user, subscription_id)
    return SubscriptionResponse.model_validate(subscription)


@router.post(
    "/{subscription_id}/confirm",
    response_model=SubscriptionResponse,
    summary="Confirm a pending subscription",
)
async def confirm_subscription(
    subscription_id: uuid.UUID,
    body: SubscriptionConfirmRequest | None = None,
    manager: SubscriptionManager = Depends(get_subscription_manager),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionResponse:
    """Activate a subscription.

    Free plans need no body. Paid plans must pass the ``payment_intent_id``
    returned at checkout once the client has completed the payment.
    """
    payment_intent_id = body.payment_intent_id if body else None
    subscription = await manager.confirm(current_user, subscription_id, payment_intent_id)
    return SubscriptionResponse.model_validate(subscription)


@router.delete(
    "/{subscription_id}",
    response_model=SubscriptionResponse,
    summary="Cancel an active subscription",
)
async def cancel_subscription(
    subscription_id: uuid.UUID,
    manager: SubscriptionManager = Depends(get_subscription_manager),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionResponse:
    subscription = await manager.cancel_subscription(current_user, subscription_id)
    return SubscriptionResponse.model_validate(subscription)
