"""
Payment provider webhook.

Stripe posts subscription events here. The raw body is verified against the
`Stripe-Signature` header before anything is trusted; any non-2xx reply makes
Stripe retry the delivery later.
"""

import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse

from providers.stripe_gateway import parse_webhook_event
from services.subscription_events import SubscriptionEventHandler
from .dependencies import get_subscription_events

logger = logging.getLogger(__name__)


webhook_router = APIRouter(tags=["Payments"])


@webhook_router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    handler: SubscriptionEventHandler = Depends(get_subscription_events),
):
    """Receive one subscription event"""
    if not handler.webhook_secret:
        logger.error("Stripe webhook received but STRIPE_WEBHOOK_SECRET is not set")
        return JSONResponse(
            content={"error": "Stripe not configured"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    if not stripe_signature:
        return JSONResponse(
            content={"error": "Missing stripe-signature header"},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    payload = await request.body()
    try:
        event = parse_webhook_event(payload, stripe_signature, handler.webhook_secret)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return JSONResponse(
            content={"error": f"Webhook Error: {e}"},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    try:
        await handler.handle(event)
    except Exception as e:
        logger.error(f"Webhook handler error for {event.get('type')}: {e}")
        return JSONResponse(
            content={"error": f"Webhook handler error: {e}"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return {"received": True}
