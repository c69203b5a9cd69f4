"""
Domain: Read-only catalog entities owned by the event/product management side.

Settlement only reads these; event and product CRUD live elsewhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Product:
    """Downloadable product sold for an event. `price` is in minor currency units."""

    product_id: UUID
    event_id: UUID
    name: str
    price: int
    file_storage_id: Optional[str] = None
    file_name: Optional[str] = None
    downloads: int = 0


@dataclass(frozen=True, slots=True)
class Event:
    event_id: UUID
    title: str
    created_by: str  # owner account id (auth provider user id)


@dataclass(frozen=True, slots=True)
class Owner:
    """Organizer account that owns an event and its payment provider credentials."""

    owner_id: str
    name: str
    email: str
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None

    def has_provider_credentials(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)


__all__ = ["Product", "Event", "Owner"]
