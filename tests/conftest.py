"""
Pytest configuration.

Adds the project root to the Python path so tests can import domain,
repositories and services, and provides an in-memory Supabase plus a seeded
catalog (owner -> event -> product with a stored file -> pending payment).
"""

import sys
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID, uuid4

import pytest
import responses

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.time import to_iso_utc, utc_now  # noqa: E402
from fake_supabase import FakeSupabase  # noqa: E402
from repositories import client as supabase_client  # noqa: E402
from repositories.payment_repository import create_payment  # noqa: E402
from services.notification_service import RESEND_EMAILS_URL  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(autouse=True)
def settlement_env(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("RESEND_API_KEY", "re_test_key")
    monkeypatch.setenv("RAZORPAY_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("EMAIL_SEND_TIMEOUT_SECONDS", "2")


@pytest.fixture
def db(monkeypatch) -> FakeSupabase:
    fake = FakeSupabase(unique={"sales_analytics": [("event_id", "product_id")]})
    monkeypatch.setattr(supabase_client, "_client", fake)
    return fake


@pytest.fixture
def http():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def resend_ok(http):
    http.add(responses.POST, RESEND_EMAILS_URL, json={"id": "email_123"}, status=200)
    return http


@dataclass
class Catalog:
    owner_id: str
    event_id: UUID
    product_id: UUID
    file_path: str

    def new_payment(self, link_id: str, email: str = "buyer@example.com", amount: int = 5000, **kwargs):
        return create_payment(
            payment_link_id=link_id,
            product_id=kwargs.pop("product_id", self.product_id),
            event_id=kwargs.pop("event_id", self.event_id),
            customer_name=kwargs.pop("customer_name", "Asha Rao"),
            customer_email=email,
            amount=amount,
            currency="INR",
            payment_link_url=f"https://rzp.io/i/{link_id}",
        )


@pytest.fixture
def catalog(db) -> Catalog:
    now = to_iso_utc(utc_now(), name="now")
    owner_id = "user_owner_1"
    event_id = uuid4()
    product_id = uuid4()
    file_path = "events/workshop/slides.pdf"

    db.tables["users"] = [
        {
            "user_id": owner_id,
            "name": "Organizer",
            "email": "organizer@example.com",
            "razorpay_key_id": "rzp_test_key",
            "razorpay_key_secret": "rzp_test_secret",
        }
    ]
    db.tables["events"] = [{"event_id": str(event_id), "title": "Workshop", "created_by": owner_id}]
    db.tables["digital_products"] = [
        {
            "product_id": str(product_id),
            "event_id": str(event_id),
            "name": "Workshop Slides",
            "price": 5000,
            "file_storage_id": file_path,
            "file_name": "slides.pdf",
            "downloads": 0,
            "created_at_utc": now,
            "updated_at_utc": now,
        }
    ]
    db.storage.files.add(file_path)
    return Catalog(owner_id=owner_id, event_id=event_id, product_id=product_id, file_path=file_path)
