"""
Session state for the data layer.

`SessionService` subscribes to an `IdentityProvider` and moves between the
Anonymous and Identified states. When an identity becomes available it loads
(or creates) the user's profile and reconciles the quota; when the identity is
cleared it drops back to anonymous tracking. Quota checks made through the
session always use the identity that is current at the time of the call.
"""

import logging
from enum import Enum
from typing import Optional

from core.models import Identity, UserProfile, UserQuota
from providers.identity_provider import (
    IdentityEvent,
    IdentityEventType,
    IdentityProvider,
    profile_from_identity,
)
from services.quota_service import QuotaService
from services.repositories import UserRepository

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    IDENTIFIED = "identified"


class SessionService:
    """Reacts to identity transitions"""

    def __init__(
        self,
        identity_provider: IdentityProvider,
        users: UserRepository,
        quota: QuotaService,
    ):
        self.identity_provider = identity_provider
        self.users = users
        self.quota = quota

        self.state = SessionState.ANONYMOUS
        self.identity: Optional[Identity] = None
        self.user: Optional[UserProfile] = None
        self.last_quota: Optional[UserQuota] = None

        self._unsubscribe = identity_provider.subscribe(self.handle_event)

    @property
    def identity_id(self) -> Optional[str]:
        return self.identity.id if self.identity else None

    async def start(self) -> None:
        """Pick up an identity that was already signed in before we subscribed"""
        identity = self.identity_provider.current_identity()
        if identity is not None and self.identity_id != identity.id:
            await self.on_identity_available(identity)

    async def handle_event(self, event: IdentityEvent) -> None:
        if event.type == IdentityEventType.AVAILABLE and event.identity is not None:
            await self.on_identity_available(event.identity)
        elif event.type == IdentityEventType.CLEARED:
            await self.on_identity_cleared()

    async def on_identity_available(self, identity: Identity) -> None:
        user = await self.users.get_user(identity.id)
        if user is None:
            user = profile_from_identity(identity)
            logger.info(f"Creating profile for first login of {identity.id}")
            await self.users.save_user(user)

        self.identity = identity
        self.user = user
        self.state = SessionState.IDENTIFIED
        self.last_quota = await self.quota.reconcile_on_login(identity.id)

    async def on_identity_cleared(self) -> None:
        logger.info("Session returned to anonymous")
        self.identity = None
        self.user = None
        self.last_quota = None
        self.state = SessionState.ANONYMOUS

    async def update_profile(self, user: UserProfile) -> None:
        await self.users.save_user(user)
        if self.identity_id == user.id:
            self.user = user

    async def get_quota(self) -> UserQuota:
        self.last_quota = await self.quota.get_quota(self.identity_id)
        return self.last_quota

    async def can_generate(self) -> bool:
        return self.quota.is_allowed(await self.get_quota())

    async def record_generation(self) -> None:
        await self.quota.record_usage(self.identity_id)

    def close(self) -> None:
        self._unsubscribe()
