"""
Payments API Endpoints.

Endpoints for issuing payment links and for operators to resend a delivery
that did not complete during settlement.
"""

import logging
from uuid import UUID

import requests
from fastapi import APIRouter, HTTPException

from api.models import PaymentLinkRequest, PaymentLinkResponse, SettlementResponse
from domain.errors import InvalidPaymentTransition, NotFoundError, ProviderNotConfigured
from services.payment_link_service import issue_payment_link
from services.settlement_service import resend_delivery

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/payments/links",
    response_model=PaymentLinkResponse,
    summary="Issue Payment Link",
    description="Create a Razorpay payment link for a product and record the pending payment.",
)
def create_payment_link(request: PaymentLinkRequest):
    """
    Issue a payment link.

    The amount is taken from the product price. The organizer's Razorpay
    credentials are used, so the payment lands in their account.
    """
    try:
        issued = issue_payment_link(
            product_id=request.product_id,
            customer_name=request.customer_name,
            customer_email=request.customer_email,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.reason)
    except ProviderNotConfigured as e:
        raise HTTPException(status_code=422, detail=str(e))
    except requests.RequestException as e:
        logger.error("Razorpay payment link creation failed: %s", e)
        raise HTTPException(status_code=502, detail=f"Razorpay API error: {str(e)}")

    return PaymentLinkResponse(
        payment_id=issued.payment_id,
        payment_link_id=issued.payment_link_id,
        payment_link_url=issued.payment_link_url,
        amount=issued.amount,
        currency=issued.currency,
    )


@router.post(
    "/payments/{payment_id}/resend",
    response_model=SettlementResponse,
    summary="Resend Delivery",
    description="Resume delivery and accounting for a payment whose email was never confirmed.",
)
def resend_payment_delivery(payment_id: UUID):
    """
    Operator-triggered resend.

    - Completed without a confirmed email: sends the email, then updates
      downloads and sales analytics
    - Already delivered: only makes sure sales analytics includes the payment
    - Still pending: checks with Razorpay first and settles only if paid
    """
    try:
        result = resend_delivery(payment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.reason)
    except InvalidPaymentTransition as e:
        raise HTTPException(status_code=409, detail=e.reason)
    except ProviderNotConfigured as e:
        raise HTTPException(status_code=422, detail=str(e))
    except requests.RequestException as e:
        logger.error("Razorpay verification failed for payment %s: %s", payment_id, e)
        raise HTTPException(status_code=502, detail=f"Razorpay API error: {str(e)}")

    return SettlementResponse.from_result(result)
