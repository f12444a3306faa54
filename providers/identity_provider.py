"""
Identity Provider Classes

Turns an external identity provider's claims into the data layer's stable
`Identity` and publishes identity state transitions to subscribers.

Subscribers see exactly two kinds of event: an identity became available, or
the identity was cleared. Repeated notifications for the same identity are
collapsed, so listeners react to state transitions rather than raw provider
callbacks.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Union

from pydantic import BaseModel

from core.models import Identity, UserProfile, now_ms

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_TAG = "user"
SUBJECT_PREFIX_LENGTH = 12


class IdentityEventType(str, Enum):
    AVAILABLE = "identity_available"
    CLEARED = "identity_cleared"


@dataclass
class IdentityEvent:
    type: IdentityEventType
    identity: Optional[Identity] = None


IdentityListener = Callable[[IdentityEvent], Union[None, Awaitable[None]]]


class IdentityClaims(BaseModel):
    """What the identity provider tells us about a signed-in user"""

    subject: str
    email: str
    full_name: Optional[str] = None
    provider: Optional[str] = None
    created_at: Optional[datetime] = None


def derive_identity_id(subject: str, provider_tag: str = DEFAULT_PROVIDER_TAG) -> str:
    """Stable local key for an external identity"""
    return f"{provider_tag}-{subject[:SUBJECT_PREFIX_LENGTH]}"


def identity_from_claims(
    claims: IdentityClaims, provider_tag: str = DEFAULT_PROVIDER_TAG
) -> Identity:
    created_at = (
        int(claims.created_at.timestamp() * 1000) if claims.created_at else now_ms()
    )
    return Identity(
        id=derive_identity_id(claims.subject, provider_tag),
        provider=claims.provider or provider_tag,
        subject=claims.subject,
        email=claims.email,
        name=claims.full_name or claims.email.split("@")[0],
        created_at=created_at,
    )


def profile_from_identity(identity: Identity) -> UserProfile:
    """Initial profile for a first login"""
    return UserProfile(
        id=identity.id,
        name=identity.name,
        brand="",
        email=identity.email,
        phone="",
        created_at=identity.created_at,
    )


class IdentityProvider(ABC):
    """Abstract base class for identity sources"""

    def __init__(self, provider_tag: str = DEFAULT_PROVIDER_TAG):
        self.provider_tag = provider_tag
        self._listeners: List[IdentityListener] = []

    @abstractmethod
    def current_identity(self) -> Optional[Identity]:
        """The signed-in identity, if any"""
        pass

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener; the returned callable unsubscribes it"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _emit(self, event: IdentityEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Identity listener failed on {event.type.value}: {e}")


class InMemoryIdentityProvider(IdentityProvider):
    """Identity state driven directly by the host application"""

    def __init__(self, provider_tag: str = DEFAULT_PROVIDER_TAG):
        super().__init__(provider_tag)
        self._identity: Optional[Identity] = None

    def current_identity(self) -> Optional[Identity]:
        return self._identity

    async def sign_in(self, claims: IdentityClaims) -> Identity:
        identity = identity_from_claims(claims, self.provider_tag)
        if self._identity is not None and self._identity.id == identity.id:
            return self._identity

        if self._identity is not None:
            # Switching accounts passes through the anonymous state
            await self.sign_out()

        self._identity = identity
        logger.info(f"Identity available: {identity.id}")
        await self._emit(IdentityEvent(IdentityEventType.AVAILABLE, identity))
        return identity

    async def sign_out(self) -> None:
        if self._identity is None:
            return
        logger.info(f"Identity cleared: {self._identity.id}")
        self._identity = None
        await self._emit(IdentityEvent(IdentityEventType.CLEARED))
