"""Billing error taxonomy.

Services raise these; ``app.main`` renders them as ``{"detail": message}``
with the status code carried by the exception class.
"""

from fastapi import status


class BillingError(Exception):
    """Base class for billing failures that map onto an HTTP status."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BillingError):
    """Malformed plan or subscription input."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(BillingError):
    """Missing plan, subscription or user (or one the caller does not own)."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(BillingError):
    """Duplicate active subscription, or a transition out of a terminal state."""

    status_code = status.HTTP_409_CONFLICT


class PaymentIncompleteError(BillingError):
    """The provider has not (yet) reported the payment as succeeded."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, payment_status: str | None = None) -> None:
        super().__init__(message)
        self.payment_status = payment_status


class GatewayError(BillingError):
    """A Stripe API call failed. Carries the provider's message."""

    status_code = status.HTTP_502_BAD_GATEWAY
