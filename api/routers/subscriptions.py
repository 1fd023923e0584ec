"""
Subscription API Endpoints.

Endpoints for starting a recurring subscription checkout and opening the
Stripe billing portal.
"""

from fastapi import APIRouter, Depends

from api.deps import get_current_user_id
from api.models import ErrorResponse, RedirectUrlResponse, SubscriptionCheckoutRequest
from services.subscription_checkout_service import open_billing_portal, start_subscription_checkout

router = APIRouter()


@router.post(
    "/subscriptions/checkout",
    response_model=RedirectUrlResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Start Subscription Checkout",
    description="Create a Stripe checkout session for the pro or business plan."
)
def create_subscription_checkout(
    request: SubscriptionCheckoutRequest,
    user_id: str = Depends(get_current_user_id),
):
    """
    Start a recurring subscription for the authenticated user.

    **Process:**
    1. Rejects tiers other than `pro` and `business` (400)
    2. Rejects users with an active subscription (409); changes go through
       the billing portal
    3. Returns the Stripe checkout URL
    """
    url = start_subscription_checkout(user_id, request.tier)
    return RedirectUrlResponse(url=url)


@router.post(
    "/billing/portal",
    response_model=RedirectUrlResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Open Billing Portal",
    description="Create a Stripe customer portal session for managing the subscription."
)
def create_billing_portal_session(user_id: str = Depends(get_current_user_id)):
    url = open_billing_portal(user_id)
    return RedirectUrlResponse(url=url)
