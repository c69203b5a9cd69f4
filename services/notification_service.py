"""
Notification dispatcher for product delivery emails.

Sends transactional email through the Resend HTTP API. Every failure mode
(missing API key, non-2xx response, timeout, connection error) is reported as
DispatchError so the settlement service can treat delivery as best-effort.
"""

from __future__ import annotations

import html
import logging

import requests

from config import Config
from domain.catalog import Product
from domain.errors import DispatchError
from domain.payment import Payment

logger = logging.getLogger(__name__)

RESEND_EMAILS_URL = "https://api.resend.com/emails"


def send(to: str, subject: str, html_body: str) -> str:
    """
    Send one email and return the provider's message id.

    Raises:
        DispatchError: if the email was not accepted within the configured timeout
    """

    api_key = Config.resend_api_key()
    if not api_key:
        raise DispatchError("Resend API key not configured")

    try:
        response = requests.post(
            RESEND_EMAILS_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json={
                "from": Config.resend_from_email(),
                "to": to,
                "subject": subject,
                "html": html_body,
            },
            timeout=Config.email_send_timeout_seconds(),
        )
    except requests.Timeout as e:
        raise DispatchError(f"Resend request timed out: {e}") from e
    except requests.RequestException as e:
        raise DispatchError(f"Resend request failed: {e}") from e

    if not response.ok:
        try:
            detail = response.json().get("message") or response.status_code
        except ValueError:
            detail = response.status_code
        raise DispatchError(f"Resend API error: {detail}")

    try:
        message_id = str(response.json().get("id", ""))
    except ValueError:
        message_id = ""
    logger.info("Delivery email accepted by Resend (id=%s)", message_id or "unknown")
    return message_id


def render_delivery_email(customer_name: str, product_name: str, file_url: str) -> str:
    name = html.escape(customer_name)
    product = html.escape(product_name)
    url = html.escape(file_url, quote=True)
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #333;">Thank you for your purchase!</h2>
  <p>Dear {name},</p>
  <p>Your payment has been successfully processed. Here's your digital product:</p>
  <div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3 style="margin-top: 0; color: #495057;">{product}</h3>
    <p style="margin-bottom: 15px;">Click the button below to download your file:</p>
    <a href="{url}"
       style="background-color: #007bff; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">
      Download File
    </a>
  </div>
  <p style="color: #6c757d; font-size: 14px;">
    If you have any questions, please don't hesitate to contact us.
  </p>
</div>
"""


def send_product_delivery(payment: Payment, product: Product, file_url: str) -> str:
    """Email the buyer a download link for the product they paid for."""

    return send(
        to=payment.customer_email,
        subject=f"Your Digital Product: {product.name}",
        html_body=render_delivery_email(payment.customer_name, product.name, file_url),
    )


__all__ = [
    "RESEND_EMAILS_URL",
    "send",
    "render_delivery_email",
    "send_product_delivery",
]
