"""
Webhook ingestion for Razorpay payment-link notifications.

Transport-agnostic: takes the raw request body and signature header, returns a
status code and a small JSON body. The HTTP router only forwards.

Response contract:
- 2xx: nothing further is needed from the provider (includes unhandled event
  kinds and redelivered notifications)
- non-2xx: the provider should retry or an operator must look at it
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError

from config import Config
from domain.errors import (
    AuthenticityError,
    InvalidPaymentTransition,
    MalformedPayload,
    NotFoundError,
)
from services.settlement_service import PaymentLinkPaid, SettlementResult, settle_payment_link

logger = logging.getLogger(__name__)

PAYMENT_LINK_PAID = "payment_link.paid"


# ============================================================================
# Provider payload models
# ============================================================================

class _Customer(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class _PaymentLinkEntity(BaseModel):
    id: str
    amount_paid: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    customer: Optional[_Customer] = None


class _PaymentEntity(BaseModel):
    id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    email: Optional[str] = None


class _PaymentLinkWrapper(BaseModel):
    entity: _PaymentLinkEntity


class _PaymentWrapper(BaseModel):
    entity: _PaymentEntity


class _PaidPayload(BaseModel):
    payment_link: _PaymentLinkWrapper
    payment: Optional[_PaymentWrapper] = None


class _Envelope(BaseModel):
    event: str
    payload: Dict[str, Any] = {}


@dataclass(frozen=True, slots=True)
class WebhookNotification:
    """Parsed webhook: the event kind plus the paid notification when it applies."""
    event: str
    paid: Optional[PaymentLinkPaid] = None


@dataclass(frozen=True, slots=True)
class WebhookResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Verification and parsing
# ============================================================================

def verify_signature(raw_body: bytes, signature: Optional[str]) -> None:
    """
    Check X-Razorpay-Signature: hex HMAC-SHA256 of the raw body.

    Without a configured secret, verification fails closed in production and is
    skipped (with a warning) elsewhere.

    Raises:
        AuthenticityError
    """
    secret = Config.razorpay_webhook_secret()
    if not secret:
        if Config.is_production():
            raise AuthenticityError("webhook secret is not configured")
        logger.warning("RAZORPAY_WEBHOOK_SECRET not set; accepting unverified webhook (%s)", Config.environment())
        return

    if not signature:
        raise AuthenticityError("missing webhook signature")

    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature.strip()):
        raise AuthenticityError("invalid webhook signature")


def parse_notification(raw_body: bytes) -> WebhookNotification:
    """
    Parse the provider envelope; only payment_link.paid payloads are unpacked.

    Raises:
        MalformedPayload
    """
    try:
        data = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedPayload(f"webhook body is not valid JSON: {e}") from e

    try:
        envelope = _Envelope.model_validate(data)
        if envelope.event != PAYMENT_LINK_PAID:
            return WebhookNotification(event=envelope.event)
        paid = _PaidPayload.model_validate(envelope.payload.get("payload"))
    except ValidationError as e:
        raise MalformedPayload(f"unexpected webhook shape: {e.error_count()} validation error(s)") from e

    link = paid.payment_link.entity
    payment = paid.payment.entity if paid.payment else None
    customer = link.customer or _Customer()

    return WebhookNotification(
        event=envelope.event,
        paid=PaymentLinkPaid(
            payment_link_id=link.id,
            provider_payment_id=payment.id if payment else None,
            amount_paid=link.amount_paid if link.amount_paid is not None else (payment.amount if payment else None),
            currency=link.currency or (payment.currency if payment else None),
            customer_name=customer.name,
            customer_email=customer.email or (payment.email if payment else None),
        ),
    )


# ============================================================================
# Handler
# ============================================================================

def _failure(status_code: int, error: str) -> WebhookResponse:
    return WebhookResponse(status_code=status_code, body={"success": False, "error": error})


def _settled(result: SettlementResult) -> WebhookResponse:
    return WebhookResponse(
        status_code=200,
        body={
            "success": True,
            "outcome": result.outcome.value,
            "payment_id": str(result.payment_id),
            "pending": list(result.pending),
            "message": result.message,
        },
    )


def handle_webhook(raw_body: bytes, signature: Optional[str]) -> WebhookResponse:
    """
    Verify, parse and act on one webhook delivery.

    Safe to call repeatedly for the same notification; redeliveries of a
    settled payment return 200 without repeating side effects.
    """
    try:
        verify_signature(raw_body, signature)
    except AuthenticityError as e:
        logger.warning("Rejected webhook: %s", e)
        return _failure(401, e.reason)

    try:
        notification = parse_notification(raw_body)
    except MalformedPayload as e:
        logger.warning("Rejected webhook: %s", e)
        return _failure(400, e.reason)

    if notification.paid is None:
        logger.info("Ignoring webhook event %s", notification.event)
        return WebhookResponse(status_code=200, body={"success": True, "message": "Webhook processed"})

    try:
        result = settle_payment_link(notification.paid)
    except NotFoundError as e:
        logger.error("Settlement aborted for link %s: %s", notification.paid.payment_link_id, e.reason)
        return _failure(404, e.reason)
    except InvalidPaymentTransition as e:
        logger.error("Settlement refused for link %s: %s", notification.paid.payment_link_id, e.reason)
        return _failure(409, e.reason)
    except Exception:
        logger.exception("Webhook processing error for link %s", notification.paid.payment_link_id)
        return _failure(500, "Internal server error")

    return _settled(result)


__all__ = [
    "PAYMENT_LINK_PAID",
    "WebhookNotification",
    "WebhookResponse",
    "verify_signature",
    "parse_notification",
    "handle_webhook",
]
