"""
Sales analytics aggregator.

Keeps the per-(event, product) SalesAnalyticsRecord in step with settled
payments. Writes go through an optimistic read-modify-write loop:

1. Read the record for (event_id, product_id)
2. If missing, insert it with this sale already applied
   (a concurrent insert wins the unique constraint; we retry as an update)
3. If the payment is already among the customers, stop (idempotent)
4. Otherwise write the next version, conditional on the version we read
   (a concurrent update makes the write miss; we re-read and retry)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID, uuid4

from domain.errors import AggregationError, PaymentNotFound, ProductNotFound
from domain.sales_analytics import CustomerPurchase, EventSalesReport, SalesAnalyticsRecord
from domain.time import utc_now
from repositories.catalog_repository import get_product, list_events_by_owner
from repositories.payment_repository import get_payment_by_id
from repositories.sales_analytics_repository import (
    get_record,
    insert_record,
    list_records_by_event,
    update_record,
)

logger = logging.getLogger(__name__)

MAX_CREDIT_ATTEMPTS: int = 5


@dataclass(frozen=True, slots=True)
class CreditResult:
    """
    analytics_id: Record the sale was credited to
    applied: False when the payment had already been credited
    total_units: Units on the record after this call
    """
    analytics_id: UUID
    applied: bool
    total_units: int


def credit_sale(payment_id: UUID) -> CreditResult:
    """
    Credit a settled payment to its product's sales analytics record.

    Safe to call more than once for the same payment: the second call
    finds the payment among the record's customers and changes nothing.

    Raises:
        PaymentNotFound, ProductNotFound
        AggregationError: payment not completed, or writes kept conflicting
    """
    payment = get_payment_by_id(payment_id)
    if payment is None:
        raise PaymentNotFound(f"payment {payment_id} not found")
    if not payment.is_completed:
        raise AggregationError(f"payment {payment_id} is {payment.status.value}, not completed")

    product = get_product(payment.product_id)
    if product is None:
        raise ProductNotFound(f"product {payment.product_id} not found")

    event_id = payment.event_id or product.event_id
    purchase = CustomerPurchase(
        customer_name=payment.customer_name,
        customer_email=payment.customer_email,
        purchase_date=payment.settled_at or payment.updated_at,
        amount=payment.amount,
        payment_id=payment.payment_id,
    )

    for attempt in range(1, MAX_CREDIT_ATTEMPTS + 1):
        now = utc_now()
        existing = get_record(event_id, product.product_id)

        if existing is None:
            record = SalesAnalyticsRecord.first_sale(
                analytics_id=uuid4(),
                event_id=event_id,
                product_id=product.product_id,
                product_name=product.name,
                purchase=purchase,
                at=now,
            )
            if insert_record(record):
                logger.info(
                    "Created sales analytics %s for event %s product %s",
                    record.analytics_id, event_id, product.product_id,
                )
                return CreditResult(record.analytics_id, True, record.total_units)
            logger.debug("Sales analytics insert lost a race (attempt %d)", attempt)
            continue

        if existing.has_payment(payment.payment_id):
            logger.info("Payment %s already credited to analytics %s", payment_id, existing.analytics_id)
            return CreditResult(existing.analytics_id, False, existing.total_units)

        record = existing.with_sale(purchase, now)
        if update_record(record, expected_version=existing.version):
            return CreditResult(record.analytics_id, True, record.total_units)
        logger.debug("Sales analytics update lost a race (attempt %d)", attempt)

    raise AggregationError(
        f"could not credit payment {payment_id} after {MAX_CREDIT_ATTEMPTS} attempts"
    )


def list_event_sales(event_id: UUID) -> List[SalesAnalyticsRecord]:
    return list_records_by_event(event_id)


def get_product_sales(event_id: UUID, product_id: UUID) -> Optional[SalesAnalyticsRecord]:
    return get_record(event_id, product_id)


def list_owner_sales(owner_id: str) -> List[SalesAnalyticsRecord]:
    """Every product rollup across all events the owner created."""
    records: List[SalesAnalyticsRecord] = []
    for event in list_events_by_owner(owner_id):
        records.extend(list_records_by_event(event.event_id))
    return records


def get_event_sales_report(event_id: UUID) -> EventSalesReport:
    """Totals for an event; customers are counted once across all products."""
    return EventSalesReport.from_records(event_id, tuple(list_records_by_event(event_id)))


__all__ = [
    "CreditResult",
    "MAX_CREDIT_ATTEMPTS",
    "credit_sale",
    "list_event_sales",
    "get_product_sales",
    "list_owner_sales",
    "get_event_sales_report",
]
