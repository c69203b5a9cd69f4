"""
Runtime configuration.

Values come from the environment, after loading the `.env` file that sits in
the project root. Nothing here is cached beyond the process environment, so
tests can monkeypatch variables freely.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}")


class Config:
    """Accessors for every environment setting the platform reads."""

    @classmethod
    def environment(cls) -> str:
        return os.getenv("ENVIRONMENT", "dev").lower()

    @classmethod
    def is_production(cls) -> bool:
        return cls.environment() in ("prd", "prod", "production")

    # Supabase
    @classmethod
    def supabase_url(cls) -> str | None:
        return os.getenv("SUPABASE_URL")

    @classmethod
    def supabase_key(cls) -> str | None:
        return os.getenv("SUPABASE_KEY")

    @classmethod
    def product_files_bucket(cls) -> str:
        return os.getenv("PRODUCT_FILES_BUCKET", "product-files")

    @classmethod
    def download_url_ttl_seconds(cls) -> int:
        return _int_env("DOWNLOAD_URL_TTL_SECONDS", 7 * 24 * 60 * 60)

    @classmethod
    def delivery_lease_seconds(cls) -> int:
        """How long a delivery attempt holds a payment before another may retry it."""
        return _int_env("DELIVERY_LEASE_SECONDS", 300)

    # Razorpay
    @classmethod
    def razorpay_webhook_secret(cls) -> str | None:
        secret = os.getenv("RAZORPAY_WEBHOOK_SECRET", "").strip()
        return secret or None

    @classmethod
    def razorpay_timeout_seconds(cls) -> int:
        return _int_env("RAZORPAY_TIMEOUT_SECONDS", 10)

    @classmethod
    def payment_currency(cls) -> str:
        return os.getenv("PAYMENT_CURRENCY", "INR")

    # Resend
    @classmethod
    def resend_api_key(cls) -> str | None:
        key = os.getenv("RESEND_API_KEY", "").strip()
        return key or None

    @classmethod
    def resend_from_email(cls) -> str:
        return os.getenv("RESEND_FROM_EMAIL", "onboarding@resend.dev")

    @classmethod
    def email_send_timeout_seconds(cls) -> int:
        return _int_env("EMAIL_SEND_TIMEOUT_SECONDS", 10)


__all__ = ["Config"]
