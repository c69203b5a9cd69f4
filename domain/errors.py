"""
Domain: settlement error taxonomy.

Errors raised before a payment is marked completed abort the whole settlement
attempt with no writes. Errors raised afterwards leave the payment settled and
are reported as pending side effects by the settlement service.
"""

from __future__ import annotations


class SettlementError(Exception):
    """Base class for every failure the settlement pipeline knows how to report."""

    @property
    def reason(self) -> str:
        return f"{type(self).__name__}: {self}"


class AuthenticityError(SettlementError):
    """Webhook signature is missing, invalid, or cannot be checked."""


class MalformedPayload(SettlementError):
    """Webhook body is not valid JSON or does not have the provider's shape."""


class NotFoundError(SettlementError):
    """A record the settlement references no longer exists."""


class PaymentNotFound(NotFoundError):
    pass


class ProductNotFound(NotFoundError):
    pass


class EventNotFound(NotFoundError):
    pass


class OwnerNotFound(NotFoundError):
    pass


class InvalidPaymentTransition(SettlementError):
    """Only pending -> completed and pending -> failed are allowed."""


class DispatchError(SettlementError):
    """Delivery email could not be sent (provider error, timeout, missing file)."""


class AggregationError(SettlementError):
    """Sales analytics could not be credited for a settled payment."""


class ProviderNotConfigured(SettlementError):
    """The event owner has not stored payment provider credentials."""


__all__ = [
    "SettlementError",
    "AuthenticityError",
    "MalformedPayload",
    "NotFoundError",
    "PaymentNotFound",
    "ProductNotFound",
    "EventNotFound",
    "OwnerNotFound",
    "InvalidPaymentTransition",
    "DispatchError",
    "AggregationError",
    "ProviderNotConfigured",
]
