"""
Event Product Settlement Platform API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from config import Config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Event Product Settlement API",
    description="Payment-link settlement, product delivery and sales analytics for event organizers",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Browsers only call the read and link endpoints; the webhook is server-to-server.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status, version and environment.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "environment": Config.environment(),
        "service": "event-settlement-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Event Product Settlement API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import analytics, payments, webhooks

app.include_router(webhooks.router, prefix="/api/v1", tags=["Webhooks"])
app.include_router(payments.router, prefix="/api/v1", tags=["Payments"])
app.include_router(analytics.router, prefix="/api/v1", tags=["Sales Analytics"])
