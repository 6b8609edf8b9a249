"""Async Stripe API wrapper: the billing gateway.

Each method maps onto exactly one Stripe call. Stripe errors are re-raised as
:class:`GatewayError` carrying the provider's message; nothing is retried, so a
transient failure reaches the caller immediately.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache

import stripe
from stripe import StripeClient

from app.billing.exceptions import GatewayError
from app.config import settings

logger = logging.getLogger(__name__)

_CENTS = Decimal(100)


def to_minor_units(amount: Decimal | int | float | str) -> int:
    """Convert a major-unit amount (19.99) to integer minor units (1999)."""
    return int((Decimal(str(amount)) * _CENTS).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    """Convert integer minor units back to a two-decimal major-unit amount."""
    return (Decimal(amount) / _CENTS).quantize(Decimal("0.01"))


@contextmanager
def _provider_errors(action: str) -> Iterator[None]:
    """Translate Stripe SDK errors raised inside the block into GatewayError."""
    try:
        yield
    except stripe.StripeError as e:
        message = e.user_message or str(e)
        logger.error("Stripe error while %s: %s", action, message)
        raise GatewayError(message) from e


class BillingGateway:
    """Thin translation layer between billing services and the Stripe API."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        api_version: str | None = None,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.api_version = api_version
        self._client: StripeClient | None = None

    @property
    def client(self) -> StripeClient:
        """StripeClient with async HTTP support and no automatic retries, created on first use."""
        if self._client is None:
            self._client = StripeClient(
                self.api_key,
                http_client=stripe.HTTPXClient(),
                stripe_version=self.api_version,
                max_network_retries=0,
            )
        return self._client

    # -- Products & prices -------------------------------------------------

    async def create_product(self, name: str, description: str | None = None) -> stripe.Product:
        params: dict = {"name": name}
        if description:
            params["description"] = description
        logger.info("Creating Stripe product %r", name)
        with _provider_errors("creating product"):
            return await self.client.v1.products.create_async(params=params)

    async def update_product(
        self, product_id: str, name: str, description: str | None = None
    ) -> stripe.Product:
        params: dict = {"name": name}
        if description:
            params["description"] = description
        logger.info("Updating Stripe product %s", product_id)
        with _provider_errors("updating product"):
            return await self.client.v1.products.update_async(product_id, params=params)

    async def archive_product(self, product_id: str) -> stripe.Product:
        """Deactivate a product. Existing prices and subscriptions keep working."""
        logger.info("Archiving Stripe product %s", product_id)
        with _provider_errors("archiving product"):
            return await self.client.v1.products.update_async(product_id, params={"active": False})

    async def create_price(
        self,
        product_id: str,
        amount: Decimal,
        currency: str,
        interval: str,
        interval_count: int,
    ) -> stripe.Price:
        """Create a recurring price. Prices are immutable, so changes mint a new one."""
        logger.info(
            "Creating Stripe price for product %s: %s %s every %d %s",
            product_id,
            amount,
            currency,
            interval_count,
            interval,
        )
        with _provider_errors("creating price"):
            return await self.client.v1.prices.create_async(
                params={
                    "product": product_id,
                    "unit_amount": to_minor_units(amount),
                    "currency": currency,
                    "recurring": {
                        "interval": interval,
                        "interval_count": interval_count,
                    },
                }
            )

    # -- Customers & payment methods ---------------------------------------

    async def create_customer(self, email: str, name: str, user_id: str) -> stripe.Customer:
        """Create a Stripe customer linked to a job board user."""
        logger.info("Creating Stripe customer for user %s (%s)", user_id, email)
        with _provider_errors("creating customer"):
            customer = await self.client.v1.customers.create_async(
                params={
                    "email": email,
                    "name": name,
                    "metadata": {"user_id": user_id},
                }
            )
        logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
        return customer

    async def retrieve_customer(self, customer_id: str) -> stripe.Customer:
        with _provider_errors("retrieving customer"):
            return await self.client.v1.customers.retrieve_async(customer_id)

    async def attach_payment_method(self, customer_id: str, payment_method_id: str) -> stripe.PaymentMethod:
        logger.info("Attaching payment method %s to customer %s", payment_method_id, customer_id)
        with _provider_errors("attaching payment method"):
            return await self.client.v1.payment_methods.attach_async(
                payment_method_id, params={"customer": customer_id}
            )

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> stripe.Customer:
        """Make a payment method the customer's default for invoices."""
        logger.info("Setting default payment method %s for customer %s", payment_method_id, customer_id)
        with _provider_errors("updating default payment method"):
            return await self.client.v1.customers.update_async(
                customer_id,
                params={"invoice_settings": {"default_payment_method": payment_method_id}},
            )

    # -- Payment intents ---------------------------------------------------

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        metadata: dict[str, str] | None = None,
    ) -> stripe.PaymentIntent:
        """Create a card payment intent. ``amount`` is already in minor units.

        ``setup_future_usage`` makes Stripe attach the card to the customer on
        success so the recurring subscription can charge it later.
        """
        logger.info("Creating payment intent for customer %s: %d %s", customer_id, amount, currency)
        with _provider_errors("creating payment intent"):
            return await self.client.v1.payment_intents.create_async(
                params={
                    "amount": amount,
                    "currency": currency,
                    "customer": customer_id,
                    "metadata": metadata or {},
                    "payment_method_types": ["card"],
                    "setup_future_usage": "off_session",
                }
            )

    async def retrieve_payment_intent(self, payment_intent_id: str) -> stripe.PaymentIntent:
        with _provider_errors("retrieving payment intent"):
            return await self.client.v1.payment_intents.retrieve_async(payment_intent_id)

    # -- Subscriptions -----------------------------------------------------

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        payment_method_id: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> stripe.Subscription:
        params: dict = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "metadata": metadata or {},
        }
        if payment_method_id:
            params["default_payment_method"] = payment_method_id
        logger.info("Creating Stripe subscription for customer %s, price %s", customer_id, price_id)
        with _provider_errors("creating subscription"):
            return await self.client.v1.subscriptions.create_async(params=params)

    async def cancel_subscription(self, subscription_id: str) -> stripe.Subscription:
        logger.info("Canceling Stripe subscription %s", subscription_id)
        with _provider_errors("canceling subscription"):
            return await self.client.v1.subscriptions.cancel_async(subscription_id)

    # -- Webhooks ------------------------------------------------------------

    def construct_event(self, payload: bytes, sig_header: str) -> stripe.Event:
        """Verify the signature and parse a webhook event (synchronous).

        Raises ``stripe.SignatureVerificationError`` or ``ValueError``; the
        webhook route decides how to answer those.
        """
        return self.client.construct_event(payload, sig_header, self.webhook_secret)


@lru_cache
def get_billing_gateway() -> BillingGateway:
    """Process-wide gateway built from settings (FastAPI dependency)."""
    return BillingGateway(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        api_version=settings.stripe_api_version,
    )
