"""
Lifetime API Endpoints.

Endpoints for lifetime-offer availability and starting a lifetime checkout.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from api.deps import get_current_user_id, get_optional_user_id
from api.models import (
    AvailabilityResponse,
    ErrorResponse,
    LifetimeOverviewResponse,
    UserStatusResponse,
    tier_prices,
)
from domain.lifetime import LIFETIME_CURRENCY
from services.lifetime_checkout_service import get_lifetime_overview, start_lifetime_checkout

router = APIRouter()


@router.get(
    "/lifetime/availability",
    response_model=LifetimeOverviewResponse,
    responses={500: {"model": ErrorResponse}},
    summary="Lifetime Availability",
    description="Current lifetime tier, remaining slots, and the caller's own reservation state."
)
def lifetime_availability(user_id: Optional[str] = Depends(get_optional_user_id)):
    """
    Report lifetime-offer availability.

    Anonymous callers receive availability and prices only. Authenticated
    callers additionally receive their own status (`none`, `pending` with the
    reservation expiry, or `paid`).
    """
    availability, user_status = get_lifetime_overview(user_id)

    return LifetimeOverviewResponse(
        availability=AvailabilityResponse.from_domain(availability),
        prices=tier_prices(LIFETIME_CURRENCY),
        user=UserStatusResponse.from_domain(user_status) if user_id else None,
    )


@router.post(
    "/lifetime/checkout",
    status_code=303,
    responses={
        303: {"description": "Redirect to the Stripe-hosted checkout page"},
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Start Lifetime Checkout",
    description="Reserve a lifetime slot for 15 minutes and redirect to Stripe checkout."
)
def create_lifetime_checkout(user_id: str = Depends(get_current_user_id)):
    """
    Start a lifetime purchase for the authenticated user.

    **Process:**
    1. Rejects users who already own lifetime access (409)
    2. Rejects users with a checkout already in progress (409)
    3. Rejects when the offer is sold out (409)
    4. Reserves a slot in the currently open tier for 15 minutes
    5. Redirects (303) to the Stripe-hosted checkout page

    No request body is required.
    """
    result = start_lifetime_checkout(user_id)
    return RedirectResponse(url=result.checkout_url, status_code=303)
