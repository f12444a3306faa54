"""
Checkout Gateway

The payment provider seen from the remote store. Implementations create a
hosted checkout session for a subscription and return its id and redirect URL.
Failures should be raised as `CheckoutError` with a message fit for the user.
"""

from abc import ABC, abstractmethod

from core.models import CheckoutSession


class CheckoutGateway(ABC):
    """Abstract base class for payment providers"""

    @abstractmethod
    async def create_session(
        self, identity_id: str, user_email: str, success_url: str, cancel_url: str
    ) -> CheckoutSession:
        """Create a subscription checkout session"""
        pass
