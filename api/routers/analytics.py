"""
Sales Analytics API Endpoints.

Read-only views of the per-product sales rollups for reporting screens.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, HTTPException

from api.models import EventSalesReportResponse, SalesAnalyticsResponse
from services.analytics_service import (
    get_event_sales_report,
    get_product_sales,
    list_event_sales,
    list_owner_sales,
)

router = APIRouter()


@router.get(
    "/events/{event_id}/sales-analytics",
    response_model=List[SalesAnalyticsResponse],
    summary="Event Sales Analytics",
)
def get_event_sales_analytics(event_id: UUID):
    """Every product rollup for an event (empty list before the first sale)."""
    return [SalesAnalyticsResponse.from_record(r) for r in list_event_sales(event_id)]


@router.get(
    "/events/{event_id}/products/{product_id}/sales-analytics",
    response_model=SalesAnalyticsResponse,
    summary="Product Sales Analytics",
)
def get_product_sales_analytics(event_id: UUID, product_id: UUID):
    record = get_product_sales(event_id, product_id)
    if record is None:
        raise HTTPException(
            status_code=404,
            detail=f"No sales recorded for product {product_id} in event {event_id}"
        )
    return SalesAnalyticsResponse.from_record(record)


@router.get(
    "/events/{event_id}/sales-report",
    response_model=EventSalesReportResponse,
    summary="Event Sales Report",
)
def get_event_sales_report_endpoint(event_id: UUID):
    """
    Totals across all products of an event.

    `total_customers` counts each email once even if they bought several products.
    """
    return EventSalesReportResponse.from_report(get_event_sales_report(event_id))


@router.get(
    "/owners/{owner_id}/sales-analytics",
    response_model=List[SalesAnalyticsResponse],
    summary="Owner Sales Analytics",
)
def get_owner_sales_analytics(owner_id: str):
    """Product rollups for every event the owner created."""
    return [SalesAnalyticsResponse.from_record(r) for r in list_owner_sales(owner_id)]
