"""
ScopeSafe Billing API - Main Application.

FastAPI application exposing lifetime-offer availability, lifetime checkout,
subscription checkout, the billing portal, subscription entitlements, and
the Stripe webhook.
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from services.errors import BUSINESS_RULE_ERRORS, BillingError

# Configure logging
log_level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
logging.basicConfig(
    level=log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="ScopeSafe Billing API",
    description="Lifetime access allocation, Stripe checkout, and subscription entitlements",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

cors_origins = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    """Render every billing failure as `{"error", "code"}` with its HTTP status."""

    if not isinstance(exc, BUSINESS_RULE_ERRORS):
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code},
    )


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "scopesafe-billing-api"
    }


# Import and include routers
from api.routers import account, lifetime, subscriptions, webhooks

app.include_router(lifetime.router, prefix="/api/v1", tags=["Lifetime"])
app.include_router(account.router, prefix="/api/v1", tags=["Account"])
app.include_router(subscriptions.router, prefix="/api/v1", tags=["Subscriptions"])
app.include_router(webhooks.router, prefix="/api/v1", tags=["Webhooks"])
