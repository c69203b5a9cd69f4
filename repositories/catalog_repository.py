"""
Catalog repository (persistence).

Read access to products, events and owner accounts, plus the two writes the
settlement pipeline performs against the catalog: the product download counter
and signed download URLs from Supabase Storage.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional
from uuid import UUID

from storage3.utils import StorageException  # type: ignore[import-not-found]

from config import Config
from domain.catalog import Event, Owner, Product
from domain.time import to_iso_utc, utc_now
from repositories.client import get_supabase, raise_for_error

logger = logging.getLogger(__name__)

_PRODUCTS_TABLE: str = "digital_products"
_EVENTS_TABLE: str = "events"
_USERS_TABLE: str = "users"

# Upper bound on compare-and-set retries for the download counter.
_MAX_COUNTER_ATTEMPTS: int = 5


def _row_to_product(row: Mapping[str, Any]) -> Product:
    return Product(
        product_id=UUID(str(row["product_id"])),
        event_id=UUID(str(row["event_id"])),
        name=str(row["name"]),
        price=int(row["price"]),
        file_storage_id=row.get("file_storage_id"),
        file_name=row.get("file_name"),
        downloads=int(row.get("downloads") or 0),
    )


def _fetch_one(table: str, column: str, value: str, action: str) -> Optional[Mapping[str, Any]]:
    response = get_supabase().table(table).select("*").eq(column, value).limit(1).execute()
    rows = raise_for_error(response, action)
    return rows[0] if rows else None


def get_product(product_id: UUID) -> Optional[Product]:
    row = _fetch_one(_PRODUCTS_TABLE, "product_id", str(product_id), "get product")
    return _row_to_product(row) if row else None


def _row_to_event(row: Mapping[str, Any]) -> Event:
    return Event(
        event_id=UUID(str(row["event_id"])),
        title=str(row["title"]),
        created_by=str(row["created_by"]),
    )


def get_event(event_id: UUID) -> Optional[Event]:
    row = _fetch_one(_EVENTS_TABLE, "event_id", str(event_id), "get event")
    return _row_to_event(row) if row else None


def list_events_by_owner(owner_id: str) -> List[Event]:
    response = (
        get_supabase()
        .table(_EVENTS_TABLE)
        .select("*")
        .eq("created_by", owner_id)
        .order("created_at_utc")
        .execute()
    )
    rows = raise_for_error(response, "list events by owner")
    return [_row_to_event(row) for row in rows]


def get_owner(owner_id: str) -> Optional[Owner]:
    """Look up the organizer account by its auth-provider user id."""

    row = _fetch_one(_USERS_TABLE, "user_id", owner_id, "get owner")
    if row is None:
        return None
    return Owner(
        owner_id=str(row["user_id"]),
        name=str(row.get("name") or ""),
        email=str(row["email"]),
        razorpay_key_id=row.get("razorpay_key_id"),
        razorpay_key_secret=row.get("razorpay_key_secret"),
    )


def get_file_url(storage_ref: Optional[str]) -> Optional[str]:
    """
    Return a time-limited download URL for a stored product file.

    Returns None when the product has no file or storage does not know it.
    """

    if not storage_ref:
        return None

    bucket = get_supabase().storage.from_(Config.product_files_bucket())
    try:
        signed = bucket.create_signed_url(storage_ref, Config.download_url_ttl_seconds())
    except StorageException as e:
        logger.warning("Could not sign download URL for %s: %s", storage_ref, e)
        return None

    return signed.get("signedURL") or signed.get("signedUrl")


def increment_downloads(product_id: UUID) -> int:
    """
    Increment a product's download counter and return the new value.

    Each write is conditional on the counter value just read, so concurrent
    increments retry instead of overwriting each other.
    """

    for _ in range(_MAX_COUNTER_ATTEMPTS):
        product = get_product(product_id)
        if product is None:
            raise RuntimeError(f"Failed to increment downloads: product {product_id} not found")

        new_value = product.downloads + 1
        response = (
            get_supabase()
            .table(_PRODUCTS_TABLE)
            .update({"downloads": new_value, "updated_at_utc": to_iso_utc(utc_now(), name="updated_at")})
            .eq("product_id", str(product_id))
            .eq("downloads", product.downloads)
            .execute()
        )
        if raise_for_error(response, "increment downloads"):
            return new_value

    raise RuntimeError(
        f"Failed to increment downloads for product {product_id}: "
        f"counter kept changing after {_MAX_COUNTER_ATTEMPTS} attempts"
    )


__all__ = [
    "get_product",
    "get_event",
    "list_events_by_owner",
    "get_owner",
    "get_file_url",
    "increment_downloads",
]
