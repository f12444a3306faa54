"""
Reference Remote Store.

This module implements the backend side of the remote action protocol: the
durable store the client data layer talks to through its Bounded Remote
Caller.

Key Components:
- `RemoteStore`: The data actions (users, history, profiles, quota,
  subscription status, checkout) persisted with SQLModel. Every database
  access first awaits the shared `TableInitializer`, so tables are created
  once per process no matter how many requests arrive at cold start.
- `ActionDispatcher`: Maps action names to store methods and validates each
  payload against its wire model before the store sees it.

Quota semantics:
- `increment-quota` adds one, creating the record on first use.
- `sync-quota` stores max(stored, localCount) and returns the merged quota.
  Re-sending the same or a smaller local count never lowers the stored value.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select

from core.config import FREE_GENERATION_LIMIT, REMOTE_HISTORY_LIMIT
from core.database import TableInitializer
from core.exceptions import (
    CheckoutError,
    DatabaseConnectionError,
    DataLayerError,
    PayloadValidationError,
    UnknownActionError,
)
from core.models import (
    BriefProfile,
    CheckoutPayload,
    HistoryItem,
    HistoryRecord,
    IdentityPayload,
    IdPayload,
    ProfileRecord,
    QuotaRecord,
    QuotaSyncPayload,
    UserProfile,
    UserQuota,
    UserRecord,
    now_ms,
)
from providers.checkout_gateway import CheckoutGateway

logger = logging.getLogger(__name__)


class RemoteStore:
    """Backend persistence for the remote actions"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        tables: TableInitializer,
        free_limit: int = FREE_GENERATION_LIMIT,
        history_limit: int = REMOTE_HISTORY_LIMIT,
        checkout_gateway: Optional[CheckoutGateway] = None,
        app_base_url: str = "http://localhost:3000",
    ):
        self.session_factory = session_factory
        self.tables = tables
        self.free_limit = free_limit
        self.history_limit = history_limit
        self.checkout_gateway = checkout_gateway
        self.app_base_url = app_base_url.rstrip("/")
        # Quota read-modify-write is serialized within this process
        self._quota_lock = asyncio.Lock()

    @asynccontextmanager
    async def _session(self):
        await self.tables.ensure_tables()
        async with self.session_factory() as session:
            yield session

    async def init_db(self) -> Dict[str, Any]:
        await self.tables.ensure_tables()
        return {"success": True}

    # --- Users ---

    async def get_user(self, payload: IdPayload) -> Optional[Dict[str, Any]]:
        async with self._session() as session:
            record = await session.get(UserRecord, payload.id)
            if record is None:
                return None
            return UserProfile(
                id=record.id,
                name=record.name,
                brand=record.brand or "",
                email=record.email or "",
                phone=record.phone,
                created_at=record.created_at or 0,
            ).to_wire()

    async def save_user(self, user: UserProfile) -> Dict[str, Any]:
        async with self._session() as session:
            record = await session.get(UserRecord, user.id)
            if record is None:
                record = UserRecord(id=user.id, name=user.name, created_at=user.created_at)
            # created_at is kept from the first save
            record.name = user.name
            record.brand = user.brand
            record.email = user.email
            record.phone = user.phone
            session.add(record)
            await session.commit()
        return {"success": True}

    # --- History ---

    async def get_history(self) -> List[Dict[str, Any]]:
        async with self._session() as session:
            result = await session.exec(
                select(HistoryRecord)
                .order_by(HistoryRecord.timestamp.desc())
                .limit(self.history_limit)
            )
            return [
                {
                    "id": r.id,
                    "timestamp": int(r.timestamp),
                    "brief": r.brief,
                    "concepts": r.concepts,
                }
                for r in result.all()
            ]

    async def save_history(self, item: HistoryItem) -> Dict[str, Any]:
        async with self._session() as session:
            record = await session.get(HistoryRecord, item.id)
            if record is None:
                record = HistoryRecord(id=item.id, timestamp=item.timestamp)
            record.timestamp = item.timestamp
            record.brief = item.brief.to_wire()
            record.concepts = [c.to_wire() for c in item.concepts]
            session.add(record)
            await session.commit()
        return {"success": True}

    # --- Profiles ---

    async def get_profiles(self) -> List[Dict[str, Any]]:
        async with self._session() as session:
            result = await session.exec(
                select(ProfileRecord).order_by(ProfileRecord.name.asc())
            )
            return [{"id": r.id, "name": r.name, "brief": r.brief} for r in result.all()]

    async def save_profile(self, profile: BriefProfile) -> Dict[str, Any]:
        async with self._session() as session:
            record = await session.get(ProfileRecord, profile.id)
            if record is None:
                record = ProfileRecord(id=profile.id, name=profile.name)
            record.name = profile.name
            record.brief = profile.brief.to_wire()
            session.add(record)
            await session.commit()
        return {"success": True}

    async def delete_profile(self, payload: IdPayload) -> Dict[str, Any]:
        async with self._session() as session:
            record = await session.get(ProfileRecord, payload.id)
            if record is not None:
                await session.delete(record)
                await session.commit()
        return {"success": True}

    # --- Quota ---

    def _quota(self, record: Optional[QuotaRecord]) -> Dict[str, Any]:
        if record is None:
            return UserQuota(
                used_generations=0, limit=self.free_limit, is_premium=False
            ).to_wire()
        return UserQuota(
            used_generations=record.used_generations or 0,
            limit=self.free_limit,
            is_premium=record.is_premium is True,
        ).to_wire()

    async def get_quota(self, payload: IdentityPayload) -> Dict[str, Any]:
        async with self._session() as session:
            record = await session.get(QuotaRecord, payload.identity_id)
            return self._quota(record)

    async def increment_quota(self, payload: IdentityPayload) -> Dict[str, Any]:
        async with self._quota_lock:
            async with self._session() as session:
                record = await session.get(QuotaRecord, payload.identity_id)
                if record is None:
                    record = QuotaRecord(
                        user_id=payload.identity_id,
                        used_generations=0,
                        is_premium=False,
                        created_at=now_ms(),
                    )
                record.used_generations = (record.used_generations or 0) + 1
                session.add(record)
                await session.commit()
        return {"success": True}

    async def sync_quota(self, payload: QuotaSyncPayload) -> Dict[str, Any]:
        async with self._quota_lock:
            async with self._session() as session:
                record = await session.get(QuotaRecord, payload.identity_id)
                if record is None:
                    record = QuotaRecord(
                        user_id=payload.identity_id,
                        used_generations=payload.local_count,
                        is_premium=False,
                        created_at=now_ms(),
                    )
                    session.add(record)
                    await session.commit()
                    logger.info(
                        f"Quota created for {payload.identity_id} at {payload.local_count}"
                    )
                    return self._quota(record)

                stored = record.used_generations or 0
                merged = max(stored, payload.local_count)
                if merged > stored:
                    record.used_generations = merged
                    session.add(record)
                    await session.commit()
                return self._quota(record)

    # --- Subscription ---

    async def check_subscription(self, payload: IdentityPayload) -> Dict[str, Any]:
        async with self._session() as session:
            record = await session.get(QuotaRecord, payload.identity_id)
            return {"isPremium": bool(record and record.is_premium)}

    async def set_premium(
        self,
        identity_id: str,
        is_premium: bool,
        customer_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
    ) -> None:
        """Record a subscription state change reported by the payment provider"""
        async with self._quota_lock:
            async with self._session() as session:
                record = await session.get(QuotaRecord, identity_id)
                if record is None:
                    record = QuotaRecord(user_id=identity_id, created_at=now_ms())
                record.is_premium = is_premium
                if customer_id:
                    record.customer_id = customer_id
                record.subscription_id = subscription_id if is_premium else None
                session.add(record)
                await session.commit()
        logger.info(f"Premium status for {identity_id} set to {is_premium}")

    async def clear_subscription(self, subscription_id: str) -> int:
        """Revoke premium for whoever holds a subscription; returns rows changed"""
        async with self._quota_lock:
            async with self._session() as session:
                result = await session.exec(
                    select(QuotaRecord).where(QuotaRecord.subscription_id == subscription_id)
                )
                records = result.all()
                for record in records:
                    record.is_premium = False
                    record.subscription_id = None
                    session.add(record)
                await session.commit()
        logger.info(f"Subscription {subscription_id} cleared for {len(records)} user(s)")
        return len(records)

    async def create_checkout(self, payload: CheckoutPayload) -> Dict[str, Any]:
        if self.checkout_gateway is None:
            logger.error("Checkout requested but no payment provider is configured")
            raise CheckoutError("Checkout not configured (missing payment provider)", status=500)

        success_url = payload.success_url or f"{self.app_base_url}/?checkout=success"
        cancel_url = payload.cancel_url or f"{self.app_base_url}/?checkout=cancelled"
        try:
            session = await self.checkout_gateway.create_session(
                payload.identity_id, payload.user_email, success_url, cancel_url
            )
        except CheckoutError:
            raise
        except Exception as e:
            logger.error(f"Checkout provider error: {e}")
            raise CheckoutError(str(e) or "Checkout failed", status=500) from e

        return session.to_wire()


Handler = Callable[..., Awaitable[Any]]


class ActionDispatcher:
    """Routes `{action, payload}` requests to the remote store"""

    def __init__(self, store: RemoteStore):
        self.store = store
        self.handlers: Dict[str, Tuple[Optional[Type[BaseModel]], Handler]] = {
            "init-db": (None, store.init_db),
            "get-user": (IdPayload, store.get_user),
            "save-user": (UserProfile, store.save_user),
            "get-history": (None, store.get_history),
            "save-history": (HistoryItem, store.save_history),
            "get-profiles": (None, store.get_profiles),
            "save-profile": (BriefProfile, store.save_profile),
            "delete-profile": (IdPayload, store.delete_profile),
            "get-quota": (IdentityPayload, store.get_quota),
            "increment-quota": (IdentityPayload, store.increment_quota),
            "sync-quota": (QuotaSyncPayload, store.sync_quota),
            "check-subscription": (IdentityPayload, store.check_subscription),
            "create-checkout": (CheckoutPayload, store.create_checkout),
        }

    @property
    def actions(self) -> List[str]:
        return sorted(self.handlers)

    async def dispatch(self, action: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        entry = self.handlers.get(action)
        if entry is None:
            raise UnknownActionError(action)

        model, handler = entry
        try:
            if model is None:
                return await handler()

            try:
                parsed = model.model_validate(payload or {})
            except ValidationError as e:
                fields = ", ".join(
                    ".".join(str(part) for part in err["loc"]) for err in e.errors()
                )
                raise PayloadValidationError(action, f"invalid fields: {fields}") from e

            return await handler(parsed)
        except DataLayerError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Database error in action '{action}': {e}")
            raise DatabaseConnectionError(action, str(e)) from e
