"""
Settlement service for paid payment links.

Turns a "payment link paid" notification into a settled payment and its
downstream effects:

1. Correlate the notification to a Payment by payment_link_id
2. Stop early if the payment is already completed (webhook redelivery)
3. Move the payment pending -> completed (compare-and-set, before any side effect)
4. Resolve product, event, owner; take the per-payment delivery lease
5. Send the delivery email (best-effort; the lease is released on failure)
6. On confirmed dispatch: stamp email_sent, bump downloads once per payment,
   credit sales analytics
7. Report what was done, including side effects still pending

Failures in steps 1-3 abort with no writes. Failures in step 4 abort after the
payment is already completed; `resend_delivery` resumes from step 4. Failures
in steps 5-6 never undo settlement: they are logged and listed in
`SettlementResult.pending`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import List, Optional
from uuid import UUID

from config import Config
from domain.catalog import Product
from domain.errors import (
    DispatchError,
    InvalidPaymentTransition,
    PaymentNotFound,
    ProductNotFound,
    SettlementError,
)
from domain.payment import Payment, PaymentStatus
from domain.time import utc_now
from repositories.catalog_repository import get_file_url, get_product, increment_downloads
from repositories.payment_repository import (
    backfill_event_id,
    claim_delivery,
    claim_download_count,
    claim_for_settlement,
    find_payments_by_link_id,
    get_payment_by_id,
    mark_email_sent,
    release_delivery,
    release_download_count,
)
from services.analytics_service import credit_sale
from services.notification_service import send_product_delivery
from services.payment_link_service import is_payment_link_paid, resolve_event_and_owner

logger = logging.getLogger(__name__)


class SettlementOutcome(str, Enum):
    SETTLED = "settled"
    SETTLED_PENDING_DELIVERY = "settled_pending_delivery"
    SETTLED_PENDING_ACCOUNTING = "settled_pending_accounting"
    ALREADY_SETTLED = "already_settled"
    ALREADY_DELIVERED = "already_delivered"
    DELIVERY_IN_PROGRESS = "delivery_in_progress"
    NOT_PAID = "not_paid"


@dataclass(frozen=True, slots=True)
class PaymentLinkPaid:
    """
    A provider notification that a payment link has been paid.

    amount_paid is in minor units and may be absent on older payloads.
    """
    payment_link_id: str
    provider_payment_id: Optional[str] = None
    amount_paid: Optional[int] = None
    currency: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SettlementResult:
    """
    Result of a settlement or resend attempt.

    success: False only when nothing was settled (e.g. provider says not paid)
    outcome: What happened, see SettlementOutcome
    pending: Side effects that did not complete and need a resend/reconciliation
    email_sent: True if a delivery email was confirmed during this call
    """
    success: bool
    outcome: SettlementOutcome
    payment_id: UUID
    pending: List[str] = field(default_factory=list)
    email_sent: bool = False
    analytics_id: Optional[UUID] = None
    message: str = ""


def _product_for(payment: Payment) -> Product:
    product = get_product(payment.product_id)
    if product is None:
        raise ProductNotFound(f"product {payment.product_id} for payment {payment.payment_id} not found")

    if payment.event_id is None:
        backfill_event_id(payment.payment_id, product.event_id)
        logger.info("Backfilled event %s on payment %s", product.event_id, payment.payment_id)
    return product


def _release_delivery(payment: Payment) -> None:
    try:
        if not release_delivery(payment, utc_now()):
            logger.warning("Delivery lease on payment %s was already taken over", payment.payment_id)
    except RuntimeError as e:
        logger.error("Delivery lease on payment %s not released, retry after it expires: %s", payment.payment_id, e)


def _count_download(payment: Payment, product: Product) -> bool:
    """Bump the product counter once for this payment. False means retry later."""
    if payment.downloads_counted:
        return True

    try:
        counted = claim_download_count(payment, utc_now())
    except RuntimeError as e:
        logger.error("Download for payment %s not recorded: %s", payment.payment_id, e)
        return False
    if counted is None:
        logger.info("Download for payment %s already counted", payment.payment_id)
        return True

    try:
        increment_downloads(product.product_id)
    except RuntimeError as e:
        logger.error("Download counter not updated for product %s: %s", product.product_id, e)
        try:
            release_download_count(counted, utc_now())
        except RuntimeError as release_error:
            logger.error(
                "Payment %s is marked as counted but the counter was not bumped: %s",
                payment.payment_id, release_error,
            )
        return False
    return True


def _credit(payment: Payment, pending: List[str]) -> Optional[UUID]:
    try:
        return credit_sale(payment.payment_id).analytics_id
    except (SettlementError, RuntimeError) as e:
        logger.error(
            "Sales analytics is stale: payment %s settled and delivered but not credited: %s",
            payment.payment_id, e,
        )
        pending.append("analytics")
        return None


def _delivery_in_progress(payment: Payment) -> SettlementResult:
    logger.info("Delivery of payment %s is held by another request", payment.payment_id)
    return SettlementResult(
        success=True,
        outcome=SettlementOutcome.DELIVERY_IN_PROGRESS,
        payment_id=payment.payment_id,
        message="Delivery is already being handled",
    )


def _deliver_and_account(payment: Payment) -> SettlementResult:
    """Steps 4-6 for a payment that is completed and awaits delivery."""
    product = _product_for(payment)

    # Raises EventNotFound / OwnerNotFound.
    resolve_event_and_owner(product)

    now = utc_now()
    lease = timedelta(seconds=Config.delivery_lease_seconds())
    if payment.delivery_lease_active(now, lease):
        return _delivery_in_progress(payment)
    claimed = claim_delivery(payment, now, lease)
    if claimed is None:
        return _delivery_in_progress(payment)

    file_url = get_file_url(product.file_storage_id)
    try:
        if not file_url:
            raise DispatchError(f"no downloadable file for product {product.product_id}")
        send_product_delivery(claimed, product, file_url)
    except DispatchError as e:
        logger.warning("Delivery for payment %s failed, settlement kept: %s", payment.payment_id, e)
        _release_delivery(claimed)
        return SettlementResult(
            success=True,
            outcome=SettlementOutcome.SETTLED_PENDING_DELIVERY,
            payment_id=payment.payment_id,
            pending=["delivery", "accounting"],
            message=f"Payment settled; delivery pending ({e})",
        )

    pending: List[str] = []
    delivered = claimed
    try:
        delivered = mark_email_sent(claimed, utc_now())
    except RuntimeError as e:
        # The lease stays held, and downloads_counted below records the delivery.
        logger.error("Email sent for payment %s but flag not stored: %s", payment.payment_id, e)
        pending.append("email_sent_flag")

    if not _count_download(delivered, product):
        pending.append("downloads")
    analytics_id = _credit(delivered, pending)

    if pending:
        return SettlementResult(
            success=True,
            outcome=SettlementOutcome.SETTLED_PENDING_ACCOUNTING,
            payment_id=payment.payment_id,
            pending=pending,
            email_sent=True,
            analytics_id=analytics_id,
            message=f"Payment settled and delivered; pending: {', '.join(pending)}",
        )

    logger.info("Payment %s settled, delivered and credited", payment.payment_id)
    return SettlementResult(
        success=True,
        outcome=SettlementOutcome.SETTLED,
        payment_id=payment.payment_id,
        email_sent=True,
        analytics_id=analytics_id,
        message="Payment processed successfully",
    )


def _already_settled(payment: Payment) -> SettlementResult:
    return SettlementResult(
        success=True,
        outcome=SettlementOutcome.ALREADY_SETTLED,
        payment_id=payment.payment_id,
        message="Payment already settled",
    )


def settle_payment_link(notification: PaymentLinkPaid) -> SettlementResult:
    """
    Settle the payment behind a paid payment link.

    Example:
        result = settle_payment_link(PaymentLinkPaid(payment_link_id="plink_123"))
        if result.pending:
            print(f"Settled with pending side effects: {result.pending}")

    Raises:
        PaymentNotFound: no payment for the link id (nothing written)
        InvalidPaymentTransition: payment already failed (nothing written)
        ProductNotFound, EventNotFound, OwnerNotFound: payment is completed,
            delivery could not be attempted
    """
    payments = find_payments_by_link_id(notification.payment_link_id)
    if not payments:
        raise PaymentNotFound(f"no payment for payment link {notification.payment_link_id}")
    if len(payments) > 1:
        logger.warning(
            "%d payments share payment link %s; settling %s",
            len(payments), notification.payment_link_id, payments[0].payment_id,
        )
    payment = payments[0]

    if payment.status is PaymentStatus.COMPLETED:
        logger.info("Payment %s already completed; ignoring redelivery", payment.payment_id)
        return _already_settled(payment)
    if payment.status is PaymentStatus.FAILED:
        raise InvalidPaymentTransition(f"payment {payment.payment_id} is failed and cannot be settled")

    if notification.amount_paid is not None and notification.amount_paid != payment.amount:
        logger.warning(
            "Payment %s amount mismatch: expected %d, provider reports %d",
            payment.payment_id, payment.amount, notification.amount_paid,
        )

    claimed = claim_for_settlement(payment, utc_now(), notification.provider_payment_id)
    if claimed is None:
        current = get_payment_by_id(payment.payment_id)
        if current is not None and current.is_completed:
            logger.info("Payment %s was settled by a concurrent delivery", payment.payment_id)
            return _already_settled(current)
        raise InvalidPaymentTransition(f"payment {payment.payment_id} is no longer pending")

    logger.info("Payment %s marked completed (link %s)", claimed.payment_id, claimed.payment_link_id)
    return _deliver_and_account(claimed)


def resend_delivery(payment_id: UUID) -> SettlementResult:
    """
    Operator-triggered resume of delivery and accounting for one payment.

    - completed, delivery never confirmed: rerun delivery and accounting
      (returns DELIVERY_IN_PROGRESS while another request holds the lease)
    - completed and delivered: redo only the accounting steps still missing
    - pending: settle only if Razorpay confirms the link is paid

    Raises:
        PaymentNotFound, ProductNotFound, EventNotFound, OwnerNotFound,
        InvalidPaymentTransition, ProviderNotConfigured
    """
    payment = get_payment_by_id(payment_id)
    if payment is None:
        raise PaymentNotFound(f"payment {payment_id} not found")
    if payment.status is PaymentStatus.FAILED:
        raise InvalidPaymentTransition(f"payment {payment_id} is failed and cannot be delivered")

    if payment.is_pending:
        product = get_product(payment.product_id)
        if product is None:
            raise ProductNotFound(f"product {payment.product_id} for payment {payment_id} not found")
        _, owner = resolve_event_and_owner(product)

        if not is_payment_link_paid(owner, payment.payment_link_id):
            return SettlementResult(
                success=False,
                outcome=SettlementOutcome.NOT_PAID,
                payment_id=payment_id,
                message="Payment not completed with the provider",
            )

        claimed = claim_for_settlement(payment, utc_now())
        payment = claimed or get_payment_by_id(payment_id)
        if payment is None or not payment.is_completed:
            raise InvalidPaymentTransition(f"payment {payment_id} could not be settled")

    if payment.awaits_delivery:
        return _deliver_and_account(payment)

    product = _product_for(payment)
    pending: List[str] = []
    if not payment.email_sent:
        # Delivery is proven by downloads_counted; only the stamp was lost.
        try:
            payment = mark_email_sent(payment, utc_now())
        except RuntimeError as e:
            logger.error("Email sent flag for payment %s still not stored: %s", payment_id, e)
            pending.append("email_sent_flag")

    if not _count_download(payment, product):
        pending.append("downloads")
    analytics_id = _credit(payment, pending)

    return SettlementResult(
        success=True,
        outcome=SettlementOutcome.ALREADY_DELIVERED,
        payment_id=payment_id,
        pending=pending,
        analytics_id=analytics_id,
        message="Delivery email was already sent",
    )


__all__ = [
    "PaymentLinkPaid",
    "SettlementOutcome",
    "SettlementResult",
    "settle_payment_link",
    "resend_delivery",
]
