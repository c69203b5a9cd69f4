"""
Tests for `domain/payment.py`.

Covers contract rules:
- Status moves only pending -> completed; completed and failed are terminal.
- The delivery lease admits one sender at a time until it expires.
- downloads_counted is set once and can be undone only after it was set.
- email_sent is only recorded on a completed payment.
- Timestamps must be UTC; transitions return new instances.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest

from domain.errors import InvalidPaymentTransition
from domain.payment import Payment, PaymentStatus

CREATED = datetime(2025, 3, 1, 10, 0, 0, tzinfo=timezone.utc)
LATER = datetime(2025, 3, 1, 10, 5, 0, tzinfo=timezone.utc)


def _payment(status: PaymentStatus = PaymentStatus.PENDING, **kwargs) -> Payment:
    return Payment(
        payment_id=UUID("00000000-0000-0000-0000-000000000001"),
        payment_link_id="plink_1",
        product_id=UUID("00000000-0000-0000-0000-000000000002"),
        customer_name="Asha Rao",
        customer_email="asha@example.com",
        amount=5000,
        currency="INR",
        status=status,
        created_at=CREATED,
        updated_at=CREATED,
        **kwargs,
    )


def test_complete_moves_pending_to_completed_and_keeps_original() -> None:
    """Verify complete() returns a new completed payment and leaves the original pending."""

    pending = _payment()
    completed = pending.complete(LATER, provider_payment_id="pay_1")

    assert pending.status is PaymentStatus.PENDING
    assert completed.status is PaymentStatus.COMPLETED
    assert completed.updated_at == LATER
    assert completed.settled_at == LATER
    assert completed.provider_payment_id == "pay_1"
    assert completed.awaits_delivery is True


def test_completed_is_terminal() -> None:
    completed = _payment().complete(LATER)

    with pytest.raises(InvalidPaymentTransition):
        completed.complete(LATER)


def test_failed_payment_cannot_complete() -> None:
    with pytest.raises(InvalidPaymentTransition):
        _payment(PaymentStatus.FAILED).complete(LATER)


def test_mark_email_sent_requires_completed() -> None:
    """Verify delivery can only be recorded once the payment is completed."""

    with pytest.raises(InvalidPaymentTransition):
        _payment().mark_email_sent(LATER)

    delivered = _payment().complete(LATER).mark_email_sent(LATER)
    assert delivered.email_sent is True
    assert delivered.email_sent_at == LATER
    assert delivered.awaits_delivery is False


def test_email_sent_on_pending_payment_is_rejected() -> None:
    with pytest.raises(ValueError):
        _payment(email_sent=True)


def test_payment_timestamps_must_be_utc() -> None:
    """Verify created_at and transition timestamps enforce UTC."""

    with pytest.raises(ValueError):
        Payment(
            payment_id=UUID("00000000-0000-0000-0000-000000000001"),
            payment_link_id="plink_1",
            product_id=UUID("00000000-0000-0000-0000-000000000002"),
            customer_name="Asha Rao",
            customer_email="asha@example.com",
            amount=5000,
            currency="INR",
            status=PaymentStatus.PENDING,
            created_at=datetime(2025, 3, 1, 10, 0, 0),
            updated_at=CREATED,
        )

    with pytest.raises(ValueError):
        _payment().complete(datetime(2025, 3, 1, 10, 0, 0, tzinfo=timezone(timedelta(hours=5, minutes=30))))


def test_payment_is_immutable() -> None:
    payment = _payment()

    with pytest.raises(FrozenInstanceError):
        payment.status = PaymentStatus.COMPLETED  # type: ignore[misc]


LEASE = timedelta(minutes=5)


def test_delivery_lease_admits_one_sender_until_expiry() -> None:
    """Verify a live lease refuses a second claim and an expired one can be taken over."""

    completed = _payment().complete(CREATED)
    leased = completed.claim_delivery(LATER, LEASE)

    assert leased.delivery_claimed_at == LATER
    assert leased.delivery_lease_active(LATER + timedelta(minutes=1), LEASE) is True
    with pytest.raises(InvalidPaymentTransition):
        leased.claim_delivery(LATER + timedelta(minutes=1), LEASE)

    taken_over = leased.claim_delivery(LATER + LEASE, LEASE)
    assert taken_over.delivery_claimed_at == LATER + LEASE


def test_delivery_lease_requires_undelivered_completed_payment() -> None:
    with pytest.raises(InvalidPaymentTransition):
        _payment().claim_delivery(LATER, LEASE)

    delivered = _payment().complete(CREATED).mark_email_sent(LATER)
    with pytest.raises(InvalidPaymentTransition):
        delivered.claim_delivery(LATER, LEASE)


def test_release_delivery_clears_lease() -> None:
    leased = _payment().complete(CREATED).claim_delivery(LATER, LEASE)

    released = leased.release_delivery(LATER)

    assert released.delivery_claimed_at is None
    assert released.awaits_delivery is True
    with pytest.raises(InvalidPaymentTransition):
        released.release_delivery(LATER)


def test_counted_downloads_prove_delivery() -> None:
    """Verify downloads_counted is set once and counts as a confirmed delivery."""

    counted = _payment().complete(CREATED).count_downloads(LATER)

    assert counted.downloads_counted is True
    assert counted.delivery_confirmed is True
    assert counted.awaits_delivery is False
    with pytest.raises(InvalidPaymentTransition):
        counted.count_downloads(LATER)

    assert counted.uncount_downloads(LATER).downloads_counted is False


def test_count_downloads_requires_completed() -> None:
    with pytest.raises(InvalidPaymentTransition):
        _payment().count_downloads(LATER)
    with pytest.raises(ValueError):
        _payment(downloads_counted=True)
