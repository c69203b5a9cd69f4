"""
Sales analytics repository (persistence).

Stores one SalesAnalyticsRecord per (event_id, product_id). Writes are
conditional: inserts rely on the table's unique (event_id, product_id)
constraint and updates are filtered on the version that was read, so the
analytics service can retry instead of losing a concurrent sale.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional
from uuid import UUID

from postgrest.exceptions import APIError  # type: ignore[import-not-found]

from domain.sales_analytics import CustomerPurchase, SalesAnalyticsRecord
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.client import get_supabase, raise_for_error

_SALES_ANALYTICS_TABLE: str = "sales_analytics"

# Postgres unique_violation
_UNIQUE_VIOLATION: str = "23505"


def _customer_to_json(customer: CustomerPurchase) -> dict[str, Any]:
    return {
        "customer_name": customer.customer_name,
        "customer_email": customer.customer_email,
        "purchase_date_utc": to_iso_utc(customer.purchase_date, name="purchase_date"),
        "amount": customer.amount,
        "payment_id": str(customer.payment_id),
    }


def _customer_from_json(data: Mapping[str, Any]) -> CustomerPurchase:
    return CustomerPurchase(
        customer_name=str(data.get("customer_name") or ""),
        customer_email=str(data["customer_email"]),
        purchase_date=parse_utc_datetime(data["purchase_date_utc"]),
        amount=int(data["amount"]),
        payment_id=UUID(str(data["payment_id"])),
    )


def _row_to_record(row: Mapping[str, Any]) -> SalesAnalyticsRecord:
    return SalesAnalyticsRecord(
        analytics_id=UUID(str(row["analytics_id"])),
        event_id=UUID(str(row["event_id"])),
        product_id=UUID(str(row["product_id"])),
        product_name=str(row["product_name"]),
        total_sales=int(row["total_sales"]),
        total_units=int(row["total_units"]),
        customer_count=int(row["customer_count"]),
        customers=tuple(_customer_from_json(c) for c in (row.get("customers") or [])),
        last_sale_at=parse_utc_datetime(row["last_sale_at_utc"]),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        updated_at=parse_utc_datetime(row["updated_at_utc"]),
        version=int(row.get("version") or 1),
    )


def _record_payload(record: SalesAnalyticsRecord) -> dict[str, Any]:
    return {
        "product_name": record.product_name,
        "total_sales": record.total_sales,
        "total_units": record.total_units,
        "customer_count": record.customer_count,
        "customers": [_customer_to_json(c) for c in record.customers],
        "last_sale_at_utc": to_iso_utc(record.last_sale_at, name="last_sale_at"),
        "updated_at_utc": to_iso_utc(record.updated_at, name="updated_at"),
        "version": record.version,
    }


def get_record(event_id: UUID, product_id: UUID) -> Optional[SalesAnalyticsRecord]:
    response = (
        get_supabase()
        .table(_SALES_ANALYTICS_TABLE)
        .select("*")
        .eq("event_id", str(event_id))
        .eq("product_id", str(product_id))
        .limit(1)
        .execute()
    )
    rows = raise_for_error(response, "get sales analytics")
    return _row_to_record(rows[0]) if rows else None


def list_records_by_event(event_id: UUID) -> List[SalesAnalyticsRecord]:
    response = (
        get_supabase()
        .table(_SALES_ANALYTICS_TABLE)
        .select("*")
        .eq("event_id", str(event_id))
        .order("created_at_utc")
        .execute()
    )
    rows = raise_for_error(response, "list sales analytics")
    return [_row_to_record(row) for row in rows]


def insert_record(record: SalesAnalyticsRecord) -> bool:
    """
    Insert a brand-new record.

    Returns:
        False if a record for (event_id, product_id) already exists
    """

    payload = _record_payload(record)
    payload.update(
        {
            "analytics_id": str(record.analytics_id),
            "event_id": str(record.event_id),
            "product_id": str(record.product_id),
            "created_at_utc": to_iso_utc(record.created_at, name="created_at"),
        }
    )

    try:
        response = get_supabase().table(_SALES_ANALYTICS_TABLE).insert(payload).execute()
    except APIError as e:
        if getattr(e, "code", None) == _UNIQUE_VIOLATION:
            return False
        raise RuntimeError(f"Failed to create sales analytics: {e}") from e

    raise_for_error(response, "create sales analytics")
    return True


def update_record(record: SalesAnalyticsRecord, expected_version: int) -> bool:
    """
    Overwrite a record if it is still at `expected_version`.

    Returns:
        False if another writer updated the record first
    """

    response = (
        get_supabase()
        .table(_SALES_ANALYTICS_TABLE)
        .update(_record_payload(record))
        .eq("analytics_id", str(record.analytics_id))
        .eq("version", expected_version)
        .execute()
    )
    rows = raise_for_error(response, "update sales analytics")
    return bool(rows)


__all__ = [
    "get_record",
    "list_records_by_event",
    "insert_record",
    "update_record",
]
