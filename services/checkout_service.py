"""
Checkout and subscription status.

Starting a checkout is the one data-layer operation that is not silently
degraded: if no redirect can be produced, the caller gets a `CheckoutError`
carrying the backend's message so it can be shown to the user.
"""

import logging

from pydantic import ValidationError

from core.exceptions import CheckoutError, RemoteCallError
from core.models import CheckoutSession, SubscriptionStatus
from providers.remote_caller import RemoteCaller

logger = logging.getLogger(__name__)

CHECKOUT_TIMEOUT_SECONDS = 15.0


class CheckoutService:
    """Payment checkout initiation and premium status checks"""

    def __init__(
        self,
        remote: RemoteCaller,
        app_base_url: str,
        timeout: float = CHECKOUT_TIMEOUT_SECONDS,
    ):
        self.remote = remote
        self.app_base_url = app_base_url.rstrip("/")
        self.timeout = timeout

    async def create_checkout_session(
        self, identity_id: str, user_email: str
    ) -> str:
        """
        Create a checkout session and return its redirect URL.

        Raises:
            CheckoutError: with the backend's message, or
                "Checkout failed (<status>)" when it gave none, or
                "Checkout failed (no redirect URL)" when the session has no URL.
        """
        payload = {
            "identityId": identity_id,
            "userEmail": user_email,
            "successUrl": f"{self.app_base_url}/?checkout=success",
            "cancelUrl": f"{self.app_base_url}/?checkout=cancelled",
        }

        try:
            data = await self.remote.call_strict(
                "create-checkout", payload, timeout=self.timeout
            )
        except RemoteCallError as e:
            if e.server_message:
                message = e.server_message
            elif e.status:
                message = f"Checkout failed ({e.status})"
            else:
                message = f"Checkout failed: {e.reason}"
            logger.error(f"create_checkout_session error for {identity_id}: {message}")
            raise CheckoutError(message, status=e.status) from e

        try:
            session = CheckoutSession.model_validate(data or {})
        except ValidationError as e:
            logger.error(f"Malformed checkout response for {identity_id}")
            raise CheckoutError("Checkout failed (invalid response)") from e

        if not session.url:
            logger.error(f"Checkout response for {identity_id} has no redirect URL")
            raise CheckoutError("Checkout failed (no redirect URL)")

        return session.url

    async def check_subscription(self, identity_id: str) -> bool:
        data = await self.remote.call("check-subscription", {"identityId": identity_id})
        if not isinstance(data, dict):
            return False
        try:
            return SubscriptionStatus.model_validate(data).is_premium
        except ValidationError:
            return False
