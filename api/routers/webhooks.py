"""
Stripe Webhook Endpoint.

Receives signed Stripe events and applies them to lifetime purchases and
subscription state.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from api.models import ErrorResponse, WebhookAck
from services.settlement_service import handle_event
from services.stripe_gateway import verify_webhook_payload

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/stripe/webhook",
    response_model=WebhookAck,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Stripe Webhook",
    description="Verify and process a Stripe event."
)
async def stripe_webhook(request: Request):
    """
    Handle a Stripe webhook delivery.

    - 400 when the `Stripe-Signature` header is missing or does not verify
      (no state is touched)
    - 500 when processing fails unexpectedly, so Stripe retries delivery
    - 200 `{"received": true}` otherwise, including for ignored event types
    """
    payload = await request.body()
    event = verify_webhook_payload(payload, request.headers.get("stripe-signature"))

    try:
        result = await run_in_threadpool(handle_event, event)
    except Exception:
        logger.exception("Stripe webhook processing error")
        return JSONResponse(
            status_code=500,
            content={"error": "Webhook handler failure.", "code": "webhook_handler_failure"},
        )

    logger.info(
        f"Stripe event {event.get('id')} ({result.event_type}) processed, handled={result.handled}"
    )
    return WebhookAck(received=True)
