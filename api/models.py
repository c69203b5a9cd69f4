"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from domain.sales_analytics import EventSalesReport, SalesAnalyticsRecord
from services.settlement_service import SettlementResult


# ============================================================================
# Webhook Models
# ============================================================================

class WebhookAck(BaseModel):
    """Body returned to the payment provider."""
    success: bool
    outcome: Optional[str] = None
    payment_id: Optional[UUID] = None
    pending: List[str] = []
    message: Optional[str] = None
    error: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "outcome": "settled",
                "payment_id": "123e4567-e89b-12d3-a456-426614174000",
                "pending": [],
                "message": "Payment processed successfully"
            }
        }


# ============================================================================
# Payment Models
# ============================================================================

class PaymentLinkRequest(BaseModel):
    """Request to issue a payment link for a product."""
    product_id: UUID = Field(..., description="Product being purchased")
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: EmailStr

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "123e4567-e89b-12d3-a456-426614174001",
                "customer_name": "Asha Rao",
                "customer_email": "asha@example.com"
            }
        }


class PaymentLinkResponse(BaseModel):
    payment_id: UUID
    payment_link_id: str
    payment_link_url: str
    amount: int = Field(..., description="Amount in minor units (paise)")
    currency: str


class SettlementResponse(BaseModel):
    """Outcome of an operator-triggered resend."""
    success: bool
    outcome: str
    payment_id: UUID
    pending: List[str]
    email_sent: bool
    analytics_id: Optional[UUID] = None
    message: str

    @classmethod
    def from_result(cls, result: SettlementResult) -> "SettlementResponse":
        return cls(
            success=result.success,
            outcome=result.outcome.value,
            payment_id=result.payment_id,
            pending=list(result.pending),
            email_sent=result.email_sent,
            analytics_id=result.analytics_id,
            message=result.message,
        )


# ============================================================================
# Sales Analytics Models
# ============================================================================

class CustomerPurchaseResponse(BaseModel):
    customer_name: str
    customer_email: str
    purchase_date: datetime
    amount: int
    payment_id: UUID


class SalesAnalyticsResponse(BaseModel):
    analytics_id: UUID
    event_id: UUID
    product_id: UUID
    product_name: str
    total_sales: int
    total_units: int
    customer_count: int
    customers: List[CustomerPurchaseResponse]
    last_sale_date: datetime
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: SalesAnalyticsRecord) -> "SalesAnalyticsResponse":
        return cls(
            analytics_id=record.analytics_id,
            event_id=record.event_id,
            product_id=record.product_id,
            product_name=record.product_name,
            total_sales=record.total_sales,
            total_units=record.total_units,
            customer_count=record.customer_count,
            customers=[
                CustomerPurchaseResponse(
                    customer_name=c.customer_name,
                    customer_email=c.customer_email,
                    purchase_date=c.purchase_date,
                    amount=c.amount,
                    payment_id=c.payment_id,
                )
                for c in record.customers
            ],
            last_sale_date=record.last_sale_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class SalesReportSummary(BaseModel):
    total_revenue: int
    total_units: int
    total_customers: int
    product_count: int
    last_sale_date: Optional[datetime] = None


class EventSalesReportResponse(BaseModel):
    event_id: UUID
    products: List[SalesAnalyticsResponse]
    summary: SalesReportSummary

    @classmethod
    def from_report(cls, report: EventSalesReport) -> "EventSalesReportResponse":
        return cls(
            event_id=report.event_id,
            products=[SalesAnalyticsResponse.from_record(r) for r in report.products],
            summary=SalesReportSummary(
                total_revenue=report.total_revenue,
                total_units=report.total_units,
                total_customers=report.total_customers,
                product_count=report.product_count,
                last_sale_date=report.last_sale_at,
            ),
        )


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int
