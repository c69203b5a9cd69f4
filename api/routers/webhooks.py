"""
Webhook API Endpoints.

Receives Razorpay payment-link notifications. Signature verification,
parsing and settlement all happen in the webhook service; this router only
hands over the raw body and maps the result onto the HTTP response.
"""

from typing import Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.models import WebhookAck
from services.webhook_service import handle_webhook

router = APIRouter()


@router.post(
    "/webhooks/razorpay",
    response_model=WebhookAck,
    summary="Razorpay Webhook",
    description="Settle payments when Razorpay reports a paid payment link.",
    responses={
        400: {"model": WebhookAck},
        401: {"model": WebhookAck},
        404: {"model": WebhookAck},
        409: {"model": WebhookAck},
        500: {"model": WebhookAck},
    },
)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
):
    """
    Handle a Razorpay webhook delivery.

    **Status codes:**
    - `200`: accepted (settled, already settled, or an event we do not act on)
    - `401`: signature missing or invalid
    - `400`: body is not a Razorpay webhook
    - `404`: referenced payment, product, event or owner does not exist
    - `409`: payment is in a state that cannot be settled
    - `500`: unexpected failure, Razorpay will retry

    A settled payment whose delivery email or analytics update failed still
    returns `200`; the body lists those side effects under `pending`.
    """
    raw_body = await request.body()
    # Settlement does blocking Supabase and Resend I/O.
    result = await run_in_threadpool(handle_webhook, raw_body, x_razorpay_signature)
    return JSONResponse(status_code=result.status_code, content=result.body)
