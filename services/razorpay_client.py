from typing import Any, Dict, Optional

import requests

from config import Config


class RazorpayClient:
    BASE_URL = "https://api.razorpay.com/v1"

    def __init__(self, key_id: str, key_secret: str, timeout: Optional[int] = None):
        self.auth = (key_id, key_secret)
        self.timeout = timeout or Config.razorpay_timeout_seconds()

    def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.BASE_URL}/{endpoint.lstrip('/')}"
        headers = {"Content-Type": "application/json"}

        if "headers" in kwargs:
            headers.update(kwargs.pop("headers"))

        response = requests.request(
            method, url, headers=headers, auth=self.auth, timeout=self.timeout, **kwargs
        )
        response.raise_for_status()
        return response.json()

    def create_payment_link(
        self,
        amount: int,
        currency: str,
        description: str,
        customer_name: str,
        customer_email: str,
    ) -> Dict[str, Any]:
        """Create a hosted payment link. `amount` is in minor units (paise)."""
        payload = {
            "amount": amount,
            "currency": currency,
            "description": description,
            "customer": {"name": customer_name, "email": customer_email},
            "notify": {"sms": False, "email": True},
            "reminder_enable": True,
        }
        return self._request("POST", "payment_links", json=payload)

    def fetch_payment_link(self, link_id: str) -> Dict[str, Any]:
        return self._request("GET", f"payment_links/{link_id}")
