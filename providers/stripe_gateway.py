"""
Stripe Payment Provider

Creates hosted subscription checkouts through the Stripe API and verifies the
webhook events Stripe sends back when a subscription starts or ends.

The Stripe client is synchronous, so session creation runs in a worker thread
to keep the event loop free.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import stripe

from core.config import Settings
from core.exceptions import CheckoutError
from core.models import CheckoutSession
from providers.checkout_gateway import CheckoutGateway

logger = logging.getLogger(__name__)


class StripeCheckoutGateway(CheckoutGateway):
    """Subscription checkout backed by Stripe Checkout"""

    def __init__(self, secret_key: str, price_id: Optional[str]):
        self.secret_key = secret_key
        self.price_id = price_id

    async def create_session(
        self, identity_id: str, user_email: str, success_url: str, cancel_url: str
    ) -> CheckoutSession:
        if not self.price_id:
            logger.error("Checkout price id is not set")
            raise CheckoutError("Stripe not configured (missing price ID)", status=500)

        params = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "customer_email": user_email,
            "line_items": [{"price": self.price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": identity_id,
            "metadata": {"userId": identity_id},
            "subscription_data": {"metadata": {"userId": identity_id}},
        }
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create, api_key=self.secret_key, **params
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout error for {identity_id}: {e.user_message or e}")
            raise CheckoutError(e.user_message or "Stripe checkout failed", status=500) from e

        logger.info(f"Checkout session {session.id} created for {identity_id}")
        return CheckoutSession(session_id=session.id, url=session.url)


def parse_webhook_event(payload: bytes, signature: str, secret: str) -> Dict[str, Any]:
    """
    Verify a webhook delivery and return the event as plain JSON data.

    Raises:
        stripe.SignatureVerificationError: the signature header does not
            match the payload, or its timestamp is outside the tolerance.
        ValueError: the payload is not a JSON object.
    """
    body = payload.decode("utf-8")
    stripe.WebhookSignature.verify_header(body, signature, secret)
    event = json.loads(body)
    if not isinstance(event, dict):
        raise ValueError("webhook payload is not an object")
    return event


def build_checkout_gateway(settings: Settings) -> Optional[CheckoutGateway]:
    """Stripe gateway when a secret key is configured, otherwise None"""
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY not set, checkout is disabled")
        return None
    return StripeCheckoutGateway(settings.stripe_secret_key, settings.checkout_price_id)
