"""
Account API Endpoints.

Read-only view of the authenticated user's billing entitlements.
"""

from fastapi import APIRouter, Depends

from api.deps import get_current_user_id
from api.models import EntitlementsResponse, ErrorResponse
from services.subscription_service import get_entitlements_for_user

router = APIRouter()


@router.get(
    "/me/entitlements",
    response_model=EntitlementsResponse,
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Current Entitlements",
    description="Feature limits derived from the user's subscription and lifetime tier."
)
def my_entitlements(user_id: str = Depends(get_current_user_id)):
    entitlements = get_entitlements_for_user(user_id)
    return EntitlementsResponse.from_domain(entitlements)
