"""
Tests for `domain/sales_analytics.py`.

Covers contract rules:
- First sale creates a record with that sale already applied.
- total_units == len(customers) and customer_count == distinct emails after every sale.
- A payment cannot be credited twice.
- last_sale_at only moves forward.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

import pytest

from domain.sales_analytics import CustomerPurchase, EventSalesReport, SalesAnalyticsRecord

EVENT_ID = UUID("00000000-0000-0000-0000-0000000000e1")
PRODUCT_ID = UUID("00000000-0000-0000-0000-0000000000f1")
T1 = datetime(2025, 3, 1, 10, 0, 0, tzinfo=timezone.utc)
T2 = datetime(2025, 3, 2, 10, 0, 0, tzinfo=timezone.utc)
T3 = datetime(2025, 3, 3, 10, 0, 0, tzinfo=timezone.utc)


def _purchase(email: str, amount: int = 5000, at: datetime = T1) -> CustomerPurchase:
    return CustomerPurchase(
        customer_name="Buyer",
        customer_email=email,
        purchase_date=at,
        amount=amount,
        payment_id=uuid4(),
    )


def _first(purchase: CustomerPurchase) -> SalesAnalyticsRecord:
    return SalesAnalyticsRecord.first_sale(
        analytics_id=uuid4(),
        event_id=EVENT_ID,
        product_id=PRODUCT_ID,
        product_name="Workshop Slides",
        purchase=purchase,
        at=T1,
    )


def _assert_invariants(record: SalesAnalyticsRecord) -> None:
    assert record.total_units == len(record.customers)
    assert record.customer_count == len({c.customer_email.lower() for c in record.customers})
    assert record.total_sales == sum(c.amount for c in record.customers)


def test_first_sale_applies_the_sale() -> None:
    """Verify a new record starts with one unit, one customer and the sale amount."""

    record = _first(_purchase("a@example.com"))

    assert record.total_sales == 5000
    assert record.total_units == 1
    assert record.customer_count == 1
    assert record.version == 1
    assert record.last_sale_at == T1
    _assert_invariants(record)


def test_with_sale_counts_distinct_customers() -> None:
    """Verify repeat buyers add units but not customers."""

    record = _first(_purchase("a@example.com"))
    record = record.with_sale(_purchase("b@example.com", 3000, T2), T2)
    record = record.with_sale(_purchase("A@example.com", 5000, T3), T3)

    assert record.total_units == 3
    assert record.customer_count == 2
    assert record.total_sales == 13000
    assert record.version == 3
    _assert_invariants(record)


def test_with_sale_rejects_same_payment_twice() -> None:
    purchase = _purchase("a@example.com")
    record = _first(purchase)

    assert record.has_payment(purchase.payment_id)
    with pytest.raises(ValueError):
        record.with_sale(purchase, T2)


def test_last_sale_date_never_moves_backwards() -> None:
    """Verify an out-of-order credit keeps the later last_sale_at."""

    record = _first(_purchase("a@example.com", at=T3))
    record = record.with_sale(_purchase("b@example.com", at=T1), T3)

    assert record.last_sale_at == T3


def test_inconsistent_record_is_rejected() -> None:
    """Verify construction refuses totals that disagree with the customer list."""

    purchase = _purchase("a@example.com")
    with pytest.raises(ValueError):
        SalesAnalyticsRecord(
            analytics_id=uuid4(),
            event_id=EVENT_ID,
            product_id=PRODUCT_ID,
            product_name="Workshop Slides",
            total_sales=5000,
            total_units=2,
            customer_count=1,
            customers=(purchase,),
            last_sale_at=T1,
            created_at=T1,
            updated_at=T1,
        )


def test_event_report_counts_customers_once_across_products() -> None:
    slides = _first(_purchase("a@example.com", 5000, T1))
    recording = SalesAnalyticsRecord.first_sale(
        analytics_id=uuid4(),
        event_id=EVENT_ID,
        product_id=uuid4(),
        product_name="Recording",
        purchase=_purchase("a@example.com", 2000, T2),
        at=T2,
    ).with_sale(_purchase("c@example.com", 2000, T3), T3)

    report = EventSalesReport.from_records(EVENT_ID, (slides, recording))

    assert report.total_revenue == 9000
    assert report.total_units == 3
    assert report.total_customers == 2
    assert report.product_count == 2
    assert report.last_sale_at == T3


def test_event_report_for_event_without_sales() -> None:
    report = EventSalesReport.from_records(EVENT_ID, ())

    assert report.total_revenue == 0
    assert report.product_count == 0
    assert report.last_sale_at is None
