"""
Domain: Per-(event, product) sales rollup.

Contract excerpts implemented here:
- One record per (event_id, product_id), created lazily on the first settled
  payment with that first sale already applied.
- total_units equals the number of customer entries.
- customer_count equals the number of distinct customer emails across entries.
- A payment is credited at most once: customer entries carry the payment_id
  and a second credit for the same payment is rejected.
- `version` increases by one on every applied sale; persistence uses it as an
  optimistic concurrency token.

This module contains only pure domain entities: no I/O, no database, no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple
from uuid import UUID

from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class CustomerPurchase:
    """One settled purchase as recorded in the rollup."""

    customer_name: str
    customer_email: str
    purchase_date: datetime
    amount: int
    payment_id: UUID

    def __post_init__(self) -> None:
        require_utc_timestamp("purchase_date", self.purchase_date)


@dataclass(frozen=True, slots=True)
class SalesAnalyticsRecord:
    analytics_id: UUID
    event_id: UUID
    product_id: UUID
    product_name: str
    total_sales: int
    total_units: int
    customer_count: int
    customers: Tuple[CustomerPurchase, ...]
    last_sale_at: datetime
    created_at: datetime
    updated_at: datetime
    version: int = 1

    def __post_init__(self) -> None:
        require_utc_timestamp("last_sale_at", self.last_sale_at)
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("updated_at", self.updated_at)

        if self.total_units != len(self.customers):
            raise ValueError("total_units must equal the number of customer entries")
        if self.customer_count != _distinct_emails(self.customers):
            raise ValueError("customer_count must equal the number of distinct customer emails")
        if self.total_sales != sum(c.amount for c in self.customers):
            raise ValueError("total_sales must equal the sum of customer amounts")
        if len({c.payment_id for c in self.customers}) != len(self.customers):
            raise ValueError("a payment may be credited only once")

    @staticmethod
    def first_sale(
        *,
        analytics_id: UUID,
        event_id: UUID,
        product_id: UUID,
        product_name: str,
        purchase: CustomerPurchase,
        at: datetime,
    ) -> "SalesAnalyticsRecord":
        """Build a new record with its first sale already applied."""

        return SalesAnalyticsRecord(
            analytics_id=analytics_id,
            event_id=event_id,
            product_id=product_id,
            product_name=product_name,
            total_sales=purchase.amount,
            total_units=1,
            customer_count=1,
            customers=(purchase,),
            last_sale_at=purchase.purchase_date,
            created_at=at,
            updated_at=at,
            version=1,
        )

    def has_payment(self, payment_id: UUID) -> bool:
        return any(c.payment_id == payment_id for c in self.customers)

    def with_sale(self, purchase: CustomerPurchase, at: datetime) -> "SalesAnalyticsRecord":
        """
        Return the next version of this record with `purchase` appended.

        lastSaleDate moves forward only; an out-of-order credit keeps the later date.
        """

        require_utc_timestamp("at", at)
        if self.has_payment(purchase.payment_id):
            raise ValueError(f"payment {purchase.payment_id} is already credited")

        customers = self.customers + (purchase,)
        return SalesAnalyticsRecord(
            analytics_id=self.analytics_id,
            event_id=self.event_id,
            product_id=self.product_id,
            product_name=self.product_name,
            total_sales=self.total_sales + purchase.amount,
            total_units=self.total_units + 1,
            customer_count=_distinct_emails(customers),
            customers=customers,
            last_sale_at=max(self.last_sale_at, purchase.purchase_date),
            created_at=self.created_at,
            updated_at=at,
            version=self.version + 1,
        )


@dataclass(frozen=True, slots=True)
class EventSalesReport:
    """Totals across every product rollup of one event."""

    event_id: UUID
    products: Tuple[SalesAnalyticsRecord, ...]
    total_revenue: int
    total_units: int
    total_customers: int
    product_count: int
    last_sale_at: Optional[datetime] = None

    @staticmethod
    def from_records(event_id: UUID, records: Tuple[SalesAnalyticsRecord, ...]) -> "EventSalesReport":
        emails = {c.customer_email.strip().lower() for r in records for c in r.customers}
        return EventSalesReport(
            event_id=event_id,
            products=records,
            total_revenue=sum(r.total_sales for r in records),
            total_units=sum(r.total_units for r in records),
            total_customers=len(emails),
            product_count=len(records),
            last_sale_at=max((r.last_sale_at for r in records), default=None),
        )


def _distinct_emails(customers: Tuple[CustomerPurchase, ...]) -> int:
    return len({c.customer_email.strip().lower() for c in customers})


__all__ = ["CustomerPurchase", "SalesAnalyticsRecord", "EventSalesReport"]
