"""
Domain: Payment attempts created from payment-link issuance.

Contract excerpts implemented here:
- Settlement moves status only pending -> completed. failed is set outside
  this pipeline and, like completed, is terminal.
- Delivery is leased: only the holder of an unexpired delivery lease may send the
  delivery email, so a payment is emailed at most once.
- email_sent / email_sent_at are stamped only after a confirmed delivery dispatch,
  and only on a completed payment.
- downloads_counted records that the product counter was bumped for this payment;
  it is only set after a confirmed dispatch.

This module contains only pure domain entities: no I/O, no database, no frameworks.
All timestamps must be passed explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import UUID

from .errors import InvalidPaymentTransition
from .time import require_utc_timestamp


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Payment:
    """
    Immutable snapshot of one purchase attempt.

    `payment_link_id` is the provider-assigned id used to correlate webhook
    notifications. `event_id` may be missing on legacy rows; settlement
    backfills it from the product. `amount` is in minor currency units.
    """

    payment_id: UUID
    payment_link_id: str
    product_id: UUID
    customer_name: str
    customer_email: str
    amount: int
    currency: str
    status: PaymentStatus
    created_at: datetime
    updated_at: datetime
    event_id: Optional[UUID] = None
    payment_link_url: Optional[str] = None
    provider_payment_id: Optional[str] = None
    email_sent: bool = False
    email_sent_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    delivery_claimed_at: Optional[datetime] = None
    downloads_counted: bool = False

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("updated_at", self.updated_at)
        if self.email_sent_at is not None:
            require_utc_timestamp("email_sent_at", self.email_sent_at)
        if self.settled_at is not None:
            require_utc_timestamp("settled_at", self.settled_at)
        if self.delivery_claimed_at is not None:
            require_utc_timestamp("delivery_claimed_at", self.delivery_claimed_at)
        if self.amount < 0:
            raise ValueError("amount must be non-negative (minor currency units)")
        if self.email_sent and self.status is not PaymentStatus.COMPLETED:
            raise ValueError("email_sent requires a completed payment")
        if self.downloads_counted and self.status is not PaymentStatus.COMPLETED:
            raise ValueError("downloads_counted requires a completed payment")

    @property
    def is_pending(self) -> bool:
        return self.status is PaymentStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return self.status is PaymentStatus.COMPLETED

    @property
    def delivery_confirmed(self) -> bool:
        """
        True once a dispatch was confirmed.

        downloads_counted is only ever set after a confirmed dispatch, so it
        also proves delivery when the email_sent stamp itself was lost.
        """

        return self.email_sent or self.downloads_counted

    @property
    def awaits_delivery(self) -> bool:
        """Settled but the delivery email was never confirmed."""

        return self.is_completed and not self.delivery_confirmed

    def delivery_lease_active(self, at: datetime, lease: timedelta) -> bool:
        require_utc_timestamp("at", at)
        return self.delivery_claimed_at is not None and self.delivery_claimed_at + lease > at

    def complete(self, at: datetime, provider_payment_id: Optional[str] = None) -> "Payment":
        require_utc_timestamp("at", at)
        if not self.is_pending:
            raise InvalidPaymentTransition(
                f"payment {self.payment_id} cannot move from {self.status.value} to completed"
            )
        return replace(
            self,
            status=PaymentStatus.COMPLETED,
            settled_at=at,
            updated_at=at,
            provider_payment_id=provider_payment_id or self.provider_payment_id,
        )

    def claim_delivery(self, at: datetime, lease: timedelta) -> "Payment":
        """Take the delivery lease; refused while another holder's lease is live."""

        if not self.awaits_delivery:
            raise InvalidPaymentTransition(f"payment {self.payment_id} does not await delivery")
        if self.delivery_lease_active(at, lease):
            raise InvalidPaymentTransition(f"delivery of payment {self.payment_id} is already in progress")
        return replace(self, delivery_claimed_at=at, updated_at=at)

    def release_delivery(self, at: datetime) -> "Payment":
        require_utc_timestamp("at", at)
        if self.delivery_claimed_at is None:
            raise InvalidPaymentTransition(f"payment {self.payment_id} holds no delivery lease")
        if self.delivery_confirmed:
            raise InvalidPaymentTransition(f"payment {self.payment_id} is already delivered")
        return replace(self, delivery_claimed_at=None, updated_at=at)

    def mark_email_sent(self, at: datetime) -> "Payment":
        require_utc_timestamp("at", at)
        if not self.is_completed:
            raise InvalidPaymentTransition(
                f"payment {self.payment_id} must be completed before delivery is recorded"
            )
        return replace(self, email_sent=True, email_sent_at=at, updated_at=at)

    def count_downloads(self, at: datetime) -> "Payment":
        require_utc_timestamp("at", at)
        if not self.is_completed:
            raise InvalidPaymentTransition(
                f"payment {self.payment_id} must be completed before downloads are counted"
            )
        if self.downloads_counted:
            raise InvalidPaymentTransition(f"downloads for payment {self.payment_id} were already counted")
        return replace(self, downloads_counted=True, updated_at=at)

    def uncount_downloads(self, at: datetime) -> "Payment":
        """Undo count_downloads when the counter write itself failed."""

        require_utc_timestamp("at", at)
        if not self.downloads_counted:
            raise InvalidPaymentTransition(f"downloads for payment {self.payment_id} were not counted")
        return replace(self, downloads_counted=False, updated_at=at)


__all__ = ["Payment", "PaymentStatus"]
