"""
Tests for `services/analytics_service.py`.

Covers:
- Record created lazily on the first credit, updated (never recreated) afterwards.
- credit_sale is idempotent per payment.
- No lost updates when credits for the same product race (insert and update races).
- Invariants hold after every credit.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from uuid import uuid4

import pytest

from domain.errors import AggregationError, PaymentNotFound
from domain.time import utc_now
from repositories.payment_repository import claim_for_settlement, mark_email_sent
from services import analytics_service
from services.analytics_service import (
    credit_sale,
    get_event_sales_report,
    get_product_sales,
    list_owner_sales,
)


def _settled(catalog, link_id: str, email: str = "buyer@example.com", amount: int = 5000):
    payment = catalog.new_payment(link_id, email=email, amount=amount)
    return claim_for_settlement(payment, utc_now())


def _assert_invariants(record) -> None:
    assert record.total_units == len(record.customers)
    assert record.customer_count == len({c.customer_email.lower() for c in record.customers})


def test_first_credit_creates_record(db, catalog) -> None:
    """Verify the first credit inserts a record with the sale applied."""

    payment = _settled(catalog, "plink_a")

    result = credit_sale(payment.payment_id)

    assert result.applied is True
    record = get_product_sales(catalog.event_id, catalog.product_id)
    assert record.analytics_id == result.analytics_id
    assert record.product_name == "Workshop Slides"
    assert (record.total_sales, record.total_units, record.customer_count) == (5000, 1, 1)
    assert record.customers[0].payment_id == payment.payment_id
    assert len(db.rows("sales_analytics")) == 1


def test_second_credit_updates_same_record(db, catalog) -> None:
    first = _settled(catalog, "plink_a", email="a@example.com")
    second = _settled(catalog, "plink_b", email="b@example.com", amount=3000)

    r1 = credit_sale(first.payment_id)
    r2 = credit_sale(second.payment_id)

    assert r1.analytics_id == r2.analytics_id
    record = get_product_sales(catalog.event_id, catalog.product_id)
    assert (record.total_sales, record.total_units, record.customer_count) == (8000, 2, 2)
    assert record.version == 2
    _assert_invariants(record)


def test_credit_is_idempotent_per_payment(db, catalog) -> None:
    """Verify crediting the same payment twice changes nothing the second time."""

    payment = _settled(catalog, "plink_a")

    credit_sale(payment.payment_id)
    writes_before = db.writes("sales_analytics")
    again = credit_sale(payment.payment_id)

    assert again.applied is False
    assert again.total_units == 1
    assert db.writes("sales_analytics") == writes_before


def test_credit_rejects_pending_payment(db, catalog) -> None:
    payment = catalog.new_payment("plink_pending")

    with pytest.raises(AggregationError):
        credit_sale(payment.payment_id)
    assert db.rows("sales_analytics") == []


def test_credit_unknown_payment(db, catalog) -> None:
    with pytest.raises(PaymentNotFound):
        credit_sale(uuid4())


def test_credit_uses_product_event_for_legacy_payment(db, catalog) -> None:
    """Verify payments without event_id are credited under the product's event."""

    payment = catalog.new_payment("plink_legacy", event_id=None)
    claim_for_settlement(payment, utc_now())

    credit_sale(payment.payment_id)

    assert get_product_sales(catalog.event_id, catalog.product_id).total_units == 1


def test_concurrent_update_is_retried_not_lost(db, catalog) -> None:
    """Verify a write that loses the version race is retried on fresh data."""

    first = _settled(catalog, "plink_a", email="a@example.com")
    racer = _settled(catalog, "plink_b", email="b@example.com")
    late = _settled(catalog, "plink_c", email="c@example.com")
    credit_sale(first.payment_id)

    fired = []

    def concurrent_writer(_query) -> None:
        if not fired:
            fired.append(True)
            credit_sale(racer.payment_id)

    db.hooks[("sales_analytics", "update")] = concurrent_writer
    credit_sale(late.payment_id)

    record = get_product_sales(catalog.event_id, catalog.product_id)
    assert record.total_units == 3
    assert {c.payment_id for c in record.customers} == {first.payment_id, racer.payment_id, late.payment_id}
    _assert_invariants(record)


def test_concurrent_first_insert_falls_back_to_update(db, catalog) -> None:
    """Verify losing the unique (event, product) insert race still credits the sale."""

    racer = _settled(catalog, "plink_a", email="a@example.com")
    late = _settled(catalog, "plink_b", email="b@example.com")

    fired = []

    def concurrent_insert(_query) -> None:
        if not fired:
            fired.append(True)
            credit_sale(racer.payment_id)

    db.hooks[("sales_analytics", "insert")] = concurrent_insert
    credit_sale(late.payment_id)

    assert len(db.rows("sales_analytics")) == 1
    record = get_product_sales(catalog.event_id, catalog.product_id)
    assert record.total_units == 2
    assert record.total_sales == 10000


def test_threaded_credits_for_same_product(db, catalog) -> None:
    """Verify many payments settling at once all land in the rollup."""

    payments = [_settled(catalog, f"plink_{i}", email=f"buyer{i}@example.com") for i in range(5)]
    credit_sale(payments[0].payment_id)

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(lambda p: credit_sale(p.payment_id), payments[1:]))

    record = get_product_sales(catalog.event_id, catalog.product_id)
    assert record.total_units == 5
    assert record.customer_count == 5
    assert record.total_sales == 25000
    _assert_invariants(record)


def test_credit_gives_up_after_repeated_conflicts(db, catalog, monkeypatch) -> None:
    first = _settled(catalog, "plink_a")
    second = _settled(catalog, "plink_b", email="b@example.com")
    credit_sale(first.payment_id)

    monkeypatch.setattr(analytics_service, "update_record", lambda record, expected_version: False)

    with pytest.raises(AggregationError):
        credit_sale(second.payment_id)


def test_event_sales_report(db, catalog) -> None:
    credit_sale(_settled(catalog, "plink_a", email="a@example.com").payment_id)
    credit_sale(_settled(catalog, "plink_b", email="a@example.com").payment_id)

    report = get_event_sales_report(catalog.event_id)

    assert report.total_revenue == 10000
    assert report.total_units == 2
    assert report.total_customers == 1
    assert report.product_count == 1


def test_purchase_date_is_settlement_time(db, catalog) -> None:
    """Verify a later write to the payment does not move its purchase date."""

    payment = _settled(catalog, "plink_a")
    mark_email_sent(payment, payment.settled_at + timedelta(days=3))

    credit_sale(payment.payment_id)

    record = get_product_sales(catalog.event_id, catalog.product_id)
    assert record.customers[0].purchase_date == payment.settled_at
    assert record.last_sale_at == payment.settled_at


def test_owner_sales_across_events(db, catalog) -> None:
    other_event = uuid4()
    other_product = uuid4()
    db.tables["events"].append({"event_id": str(other_event), "title": "Meetup", "created_by": catalog.owner_id})
    db.tables["events"].append({"event_id": str(uuid4()), "title": "Elsewhere", "created_by": "user_other"})
    db.tables["digital_products"].append(
        {
            "product_id": str(other_product),
            "event_id": str(other_event),
            "name": "Meetup Recording",
            "price": 3000,
            "file_storage_id": None,
            "downloads": 0,
        }
    )
    credit_sale(_settled(catalog, "plink_a").payment_id)
    credit_sale(_settled(catalog, "plink_b", amount=3000).payment_id)
    meetup = catalog.new_payment("plink_c", amount=3000, product_id=other_product, event_id=other_event)
    credit_sale(claim_for_settlement(meetup, utc_now()).payment_id)

    records = list_owner_sales(catalog.owner_id)

    assert {r.product_name for r in records} == {"Workshop Slides", "Meetup Recording"}
    assert sum(r.total_units for r in records) == 3
    assert list_owner_sales("user_other") == []
