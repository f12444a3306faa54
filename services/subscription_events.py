"""
Subscription events reported by the payment provider.

Maps verified webhook events onto the premium flag kept in the remote store:
- `checkout.session.completed`: premium on, customer and subscription ids kept
- `customer.subscription.updated`: premium follows the subscription status
- `customer.subscription.deleted`: premium off, by user id or subscription id
- `invoice.payment_failed`: logged only; the provider retries the payment

Other event types are acknowledged and ignored.
"""

import logging
from typing import Any, Dict, Optional

from services.remote_store import RemoteStore

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("active", "trialing")


class SubscriptionEventHandler:
    """Applies payment provider events to the remote store"""

    def __init__(self, store: RemoteStore, webhook_secret: Optional[str] = None):
        self.store = store
        self.webhook_secret = webhook_secret

    async def handle(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}

        if event_type == "checkout.session.completed":
            await self._checkout_completed(obj)
        elif event_type == "customer.subscription.updated":
            await self._subscription_updated(obj)
        elif event_type == "customer.subscription.deleted":
            await self._subscription_deleted(obj)
        elif event_type == "invoice.payment_failed":
            if obj.get("subscription"):
                logger.warning(f"Payment failed for subscription {obj['subscription']}")
        else:
            logger.info(f"Unhandled event type: {event_type}")

    @staticmethod
    def _user_id(obj: Dict[str, Any]) -> Optional[str]:
        metadata = obj.get("metadata") or {}
        return metadata.get("userId") or obj.get("client_reference_id")

    async def _checkout_completed(self, session: Dict[str, Any]) -> None:
        user_id = self._user_id(session)
        subscription_id = session.get("subscription")
        if not user_id or not subscription_id:
            logger.warning(f"Completed checkout {session.get('id')} has no user or subscription")
            return
        await self.store.set_premium(
            user_id, True, customer_id=session.get("customer"), subscription_id=subscription_id
        )

    async def _subscription_updated(self, subscription: Dict[str, Any]) -> None:
        user_id = self._user_id(subscription)
        if not user_id:
            return
        is_active = subscription.get("status") in ACTIVE_STATUSES
        await self.store.set_premium(
            user_id,
            is_active,
            customer_id=subscription.get("customer"),
            subscription_id=subscription.get("id"),
        )

    async def _subscription_deleted(self, subscription: Dict[str, Any]) -> None:
        user_id = self._user_id(subscription)
        if user_id:
            await self.store.set_premium(user_id, False)
        elif subscription.get("id"):
            await self.store.clear_subscription(subscription["id"])
