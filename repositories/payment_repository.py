"""
Payment repository (persistence).

This module provides *only* persistence operations for the Payment domain
entity. Every state change is computed by the domain transition on
`Payment` and then written with a conditional update, so that of several
concurrent callers exactly one wins:

- `claim_for_settlement`: pending -> completed, filtered on status = 'pending'
- `claim_delivery`: takes the delivery lease, filtered on the lease value read
- `claim_download_count`: sets downloads_counted, filtered on it being false

A lost race comes back as None; callers decide what that means.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, List, Mapping, Optional
from uuid import UUID, uuid4

from domain.payment import Payment, PaymentStatus
from domain.time import parse_optional_utc_datetime, parse_utc_datetime, to_iso_utc, utc_now
from repositories.client import get_supabase, raise_for_error

# Supabase table name for payment records.
# Keep this aligned with sql/schema.sql.
_PAYMENTS_TABLE: str = "payments"


def _row_to_payment(row: Mapping[str, Any]) -> Payment:
    """Convert a Supabase row into a Payment."""

    return Payment(
        payment_id=UUID(str(row["payment_id"])),
        payment_link_id=str(row["payment_link_id"]),
        payment_link_url=row.get("payment_link_url"),
        product_id=UUID(str(row["product_id"])),
        event_id=UUID(str(row["event_id"])) if row.get("event_id") else None,
        customer_name=str(row["customer_name"]),
        customer_email=str(row["customer_email"]),
        amount=int(row["amount"]),
        currency=str(row.get("currency") or "INR"),
        status=PaymentStatus(str(row["status"])),
        provider_payment_id=row.get("provider_payment_id"),
        email_sent=bool(row.get("email_sent", False)),
        email_sent_at=parse_optional_utc_datetime(row.get("email_sent_at_utc")),
        settled_at=parse_optional_utc_datetime(row.get("settled_at_utc")),
        delivery_claimed_at=parse_optional_utc_datetime(row.get("delivery_claimed_at_utc")),
        downloads_counted=bool(row.get("downloads_counted", False)),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        updated_at=parse_utc_datetime(row["updated_at_utc"]),
    )


def _optional_iso(value: Optional[datetime], name: str) -> Optional[str]:
    return to_iso_utc(value, name=name) if value is not None else None


def create_payment(
    *,
    payment_link_id: str,
    product_id: UUID,
    event_id: Optional[UUID],
    customer_name: str,
    customer_email: str,
    amount: int,
    currency: str = "INR",
    payment_link_url: Optional[str] = None,
) -> Payment:
    """
    Insert a new pending payment for an issued payment link.

    Returns:
        Payment domain model with status pending
    """

    now = utc_now()
    payment = Payment(
        payment_id=uuid4(),
        payment_link_id=payment_link_id,
        payment_link_url=payment_link_url,
        product_id=product_id,
        event_id=event_id,
        customer_name=customer_name,
        customer_email=customer_email,
        amount=amount,
        currency=currency,
        status=PaymentStatus.PENDING,
        created_at=now,
        updated_at=now,
    )

    payload: dict[str, Any] = {
        "payment_id": str(payment.payment_id),
        "payment_link_id": payment.payment_link_id,
        "payment_link_url": payment.payment_link_url,
        "product_id": str(payment.product_id),
        "event_id": str(payment.event_id) if payment.event_id else None,
        "customer_name": payment.customer_name,
        "customer_email": payment.customer_email,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status.value,
        "email_sent": False,
        "email_sent_at_utc": None,
        "settled_at_utc": None,
        "delivery_claimed_at_utc": None,
        "downloads_counted": False,
        "created_at_utc": to_iso_utc(now, name="created_at"),
        "updated_at_utc": to_iso_utc(now, name="updated_at"),
    }

    response = get_supabase().table(_PAYMENTS_TABLE).insert(payload).execute()
    raise_for_error(response, "create payment")
    return payment


def find_payments_by_link_id(payment_link_id: str) -> List[Payment]:
    """
    Retrieve every payment for a provider payment-link id.

    Historical data may contain duplicates; callers pick the first.
    """

    response = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .select("*")
        .eq("payment_link_id", payment_link_id)
        .order("created_at_utc")
        .execute()
    )
    rows = raise_for_error(response, "find payments by link id")
    return [_row_to_payment(row) for row in rows]


def get_payment_by_id(payment_id: UUID) -> Optional[Payment]:
    """
    Retrieve a single payment by its ID.

    Returns:
        Payment or None if not found
    """

    response = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .select("*")
        .eq("payment_id", str(payment_id))
        .limit(1)
        .execute()
    )
    rows = raise_for_error(response, "get payment")
    if not rows:
        return None
    return _row_to_payment(rows[0])


def patch_payment(payment_id: UUID, fields: Mapping[str, Any]) -> None:
    """Write `fields` onto a payment row and stamp updated_at_utc."""

    payload = dict(fields)
    payload.setdefault("updated_at_utc", to_iso_utc(utc_now(), name="updated_at"))

    response = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .update(payload)
        .eq("payment_id", str(payment_id))
        .execute()
    )
    raise_for_error(response, "patch payment")


def _conditional_update(
    payment: Payment,
    payload: dict[str, Any],
    guards: Mapping[str, Any],
    action: str,
) -> Optional[Payment]:
    """
    Update the payment row only if every guard column still holds its value.

    A guard value of None means the column must be null.
    """

    query = get_supabase().table(_PAYMENTS_TABLE).update(payload).eq("payment_id", str(payment.payment_id))
    for column, value in guards.items():
        query = query.is_(column, "null") if value is None else query.eq(column, value)

    rows = raise_for_error(query.execute(), action)
    if not rows:
        return None
    return _row_to_payment(rows[0])


def claim_for_settlement(
    payment: Payment,
    settled_at: datetime,
    provider_payment_id: Optional[str] = None,
) -> Optional[Payment]:
    """
    Atomically move a payment from pending to completed.

    The update is filtered on status = 'pending', so of several concurrent
    callers exactly one gets the row back.

    Raises:
        InvalidPaymentTransition: the snapshot passed in is not pending

    Returns:
        The completed Payment, or None if the payment was no longer pending
    """

    completed = payment.complete(settled_at, provider_payment_id)
    payload: dict[str, Any] = {
        "status": completed.status.value,
        "settled_at_utc": to_iso_utc(completed.settled_at, name="settled_at"),
        "updated_at_utc": to_iso_utc(completed.updated_at, name="updated_at"),
    }
    if completed.provider_payment_id is not None:
        payload["provider_payment_id"] = completed.provider_payment_id

    return _conditional_update(
        payment, payload, {"status": PaymentStatus.PENDING.value}, "claim payment for settlement"
    )


def claim_delivery(payment: Payment, claimed_at: datetime, lease: timedelta) -> Optional[Payment]:
    """
    Take the delivery lease so only this caller sends the delivery email.

    The write is conditional on the email still being unsent and on the lease
    column holding the value in `payment`, so a lease taken or renewed by
    someone else since `payment` was read makes this return None.

    Raises:
        InvalidPaymentTransition: `payment` does not await delivery or its lease is live
    """

    claimed = payment.claim_delivery(claimed_at, lease)
    payload = {
        "delivery_claimed_at_utc": to_iso_utc(claimed_at, name="claimed_at"),
        "updated_at_utc": to_iso_utc(claimed.updated_at, name="updated_at"),
    }
    guards = {
        "email_sent": False,
        "downloads_counted": False,
        "delivery_claimed_at_utc": _optional_iso(payment.delivery_claimed_at, "delivery_claimed_at"),
    }
    return _conditional_update(payment, payload, guards, "claim payment delivery")


def release_delivery(payment: Payment, released_at: datetime) -> bool:
    """Give the lease back after a failed dispatch; False if it is no longer ours."""

    released = payment.release_delivery(released_at)
    payload = {
        "delivery_claimed_at_utc": None,
        "updated_at_utc": to_iso_utc(released.updated_at, name="updated_at"),
    }
    guards = {
        "email_sent": False,
        "delivery_claimed_at_utc": _optional_iso(payment.delivery_claimed_at, "delivery_claimed_at"),
    }
    return _conditional_update(payment, payload, guards, "release payment delivery") is not None


def mark_email_sent(payment: Payment, sent_at: datetime) -> Payment:
    delivered = payment.mark_email_sent(sent_at)
    sent_iso = to_iso_utc(sent_at, name="sent_at")
    patch_payment(
        payment.payment_id,
        {"email_sent": True, "email_sent_at_utc": sent_iso, "updated_at_utc": sent_iso},
    )
    return delivered


def claim_download_count(payment: Payment, counted_at: datetime) -> Optional[Payment]:
    """
    Record that this payment's download is being counted.

    Filtered on downloads_counted = false, so the product counter is bumped
    at most once per payment.
    """

    counted = payment.count_downloads(counted_at)
    payload = {
        "downloads_counted": True,
        "updated_at_utc": to_iso_utc(counted.updated_at, name="updated_at"),
    }
    return _conditional_update(payment, payload, {"downloads_counted": False}, "claim download count")


def release_download_count(payment: Payment, released_at: datetime) -> None:
    """Clear downloads_counted after the counter write failed, so a resend retries it."""

    released = payment.uncount_downloads(released_at)
    patch_payment(
        payment.payment_id,
        {"downloads_counted": False, "updated_at_utc": to_iso_utc(released.updated_at, name="updated_at")},
    )


def backfill_event_id(payment_id: UUID, event_id: UUID) -> None:
    """Populate event_id on legacy payments created before it was stored."""

    patch_payment(payment_id, {"event_id": str(event_id)})


def list_undelivered_payments(limit: int = 100) -> List[Payment]:
    """
    Completed payments whose delivery email was never confirmed.

    These are the candidates for an operator resend.
    """

    response = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .select("*")
        .eq("status", PaymentStatus.COMPLETED.value)
        .eq("email_sent", False)
        .order("updated_at_utc")
        .limit(limit)
        .execute()
    )
    rows = raise_for_error(response, "list undelivered payments")
    return [_row_to_payment(row) for row in rows]


__all__ = [
    "create_payment",
    "find_payments_by_link_id",
    "get_payment_by_id",
    "patch_payment",
    "claim_for_settlement",
    "claim_delivery",
    "release_delivery",
    "mark_email_sent",
    "claim_download_count",
    "release_download_count",
    "backfill_event_id",
    "list_undelivered_payments",
]
