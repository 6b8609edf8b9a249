"""Stripe webhook endpoint: receives and processes Stripe events."""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_billing_gateway, get_db
from app.billing.stripe_client import BillingGateway
from app.billing.webhooks import (
    handle_payment_intent_failed,
    handle_payment_intent_succeeded,
    handle_subscription_deleted,
    handle_subscription_updated,
)
from app.config import settings
from app.schemas.billing import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])

# Map event types to handler functions
EVENT_HANDLERS = {
    "payment_intent.succeeded": handle_payment_intent_succeeded,
    "payment_intent.payment_failed": handle_payment_intent_failed,
    "customer.subscription.deleted": handle_subscription_deleted,
    "customer.subscription.updated": handle_subscription_updated,
}


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
) -> WebhookAck:
    """Receive and process Stripe webhook events.

    With ``webhook_ack_on_error`` enabled (the default) every delivery is
    answered with 200 so Stripe does not retry; ``received`` is false only
    when the signature could not be verified.
    """
    # Raw bytes are required for signature verification
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    if not sig_header:
        logger.warning("Webhook received without stripe-signature header")
        return _reject("Missing signature")

    try:
        event = gateway.construct_event(payload, sig_header)
    except stripe.SignatureVerificationError:
        logger.warning("Webhook signature verification failed")
        return _reject("Invalid signature")
    except ValueError:
        logger.warning("Invalid webhook payload")
        return _reject("Invalid payload")

    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.debug("Unhandled webhook event type: %s", event.type)
        return WebhookAck(received=True)

    logger.info("Processing webhook event: %s (id=%s)", event.type, event.id)
    try:
        await handler(db, event)
    except Exception as e:
        await db.rollback()
        logger.exception("Error processing webhook event %s", event.id)
        if not settings.webhook_ack_on_error:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Webhook processing failed",
            ) from e

    return WebhookAck(received=True)


def _reject(detail: str) -> WebhookAck:
    if not settings.webhook_ack_on_error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    return WebhookAck(received=False)
