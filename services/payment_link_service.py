"""
Payment-link issuance and provider-side payment verification.

Handles:
- Resolving the organizer who owns a product (product -> event -> owner)
- Creating a Razorpay payment link with the organizer's own credentials
- Recording the pending Payment that the webhook will later settle
- Asking Razorpay whether a link has actually been paid (manual resend path)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple
from uuid import UUID

from config import Config
from domain.catalog import Event, Owner, Product
from domain.errors import EventNotFound, OwnerNotFound, ProductNotFound, ProviderNotConfigured
from repositories.catalog_repository import get_event, get_owner, get_product
from repositories.payment_repository import create_payment
from services.razorpay_client import RazorpayClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IssuedPaymentLink:
    """
    Result of issuing a payment link.

    payment_id: Pending payment created for this link
    payment_link_id: Provider-assigned id used to correlate webhooks
    payment_link_url: Hosted checkout URL to send the buyer to
    amount: Amount in minor units (paise)
    """
    payment_id: UUID
    payment_link_id: str
    payment_link_url: str
    amount: int
    currency: str


def resolve_event_and_owner(product: Product) -> Tuple[Event, Owner]:
    """
    Load the event a product belongs to and the account that owns it.

    Raises:
        EventNotFound, OwnerNotFound
    """
    event = get_event(product.event_id)
    if event is None:
        raise EventNotFound(f"event {product.event_id} for product {product.product_id} not found")

    owner = get_owner(event.created_by)
    if owner is None:
        raise OwnerNotFound(f"owner {event.created_by} of event {event.event_id} not found")

    return event, owner


def _client_for(owner: Owner) -> RazorpayClient:
    if not owner.has_provider_credentials():
        raise ProviderNotConfigured(
            "Razorpay credentials not configured. "
            "Please add your Razorpay API keys in settings."
        )
    return RazorpayClient(owner.razorpay_key_id, owner.razorpay_key_secret)


def issue_payment_link(product_id: UUID, customer_name: str, customer_email: str) -> IssuedPaymentLink:
    """
    Create a payment link for a product and record the pending payment.

    The amount always comes from the product price, never from the caller.

    Raises:
        ProductNotFound, EventNotFound, OwnerNotFound, ProviderNotConfigured
        requests.HTTPError: if Razorpay rejects the request
    """
    product = get_product(product_id)
    if product is None:
        raise ProductNotFound(f"product {product_id} not found")

    _, owner = resolve_event_and_owner(product)
    client = _client_for(owner)
    currency = Config.payment_currency()

    link = client.create_payment_link(
        amount=product.price,
        currency=currency,
        description=f"Purchase: {product.name}",
        customer_name=customer_name,
        customer_email=customer_email,
    )

    payment = create_payment(
        payment_link_id=str(link["id"]),
        payment_link_url=link.get("short_url"),
        product_id=product.product_id,
        event_id=product.event_id,
        customer_name=customer_name,
        customer_email=customer_email,
        amount=product.price,
        currency=currency,
    )
    logger.info(
        "Issued payment link %s for product %s (payment %s)",
        payment.payment_link_id, product.product_id, payment.payment_id,
    )

    return IssuedPaymentLink(
        payment_id=payment.payment_id,
        payment_link_id=payment.payment_link_id,
        payment_link_url=payment.payment_link_url or "",
        amount=payment.amount,
        currency=payment.currency,
    )


def is_payment_link_paid(owner: Owner, payment_link_id: str) -> bool:
    """Ask Razorpay whether the link has been paid."""
    data = _client_for(owner).fetch_payment_link(payment_link_id)
    status = data.get("status")
    logger.info("Razorpay reports payment link %s as %s", payment_link_id, status)
    return status == "paid"


__all__ = [
    "IssuedPaymentLink",
    "resolve_event_and_owner",
    "issue_payment_link",
    "is_payment_link_paid",
]
