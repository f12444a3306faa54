"""
Quota Reconciliation Service.

Tracks how many generations a user has used and gates the generation action
on the free limit.

States:
- Anonymous: no identity; usage lives only in the local counter.
- Identified: usage lives in the remote store; the local counter is kept as a
  cold-start cache and as the value replayed into the remote store at login.

The counter only ever grows. At login the remote store keeps
max(remote, local), so switching devices or clearing either store can not
erase recorded usage, and the two values are never added together.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from core.config import FREE_GENERATION_LIMIT
from core.models import UserQuota
from core.storage import LocalStore, StorageKeys
from providers.remote_caller import RemoteCaller

logger = logging.getLogger(__name__)


class QuotaService:
    """Quota reads, usage recording and login-time reconciliation"""

    def __init__(
        self,
        remote: RemoteCaller,
        local: LocalStore,
        free_limit: int = FREE_GENERATION_LIMIT,
    ):
        self.remote = remote
        self.local = local
        self.free_limit = free_limit

    async def get_quota(self, identity_id: Optional[str] = None) -> UserQuota:
        if identity_id:
            quota = self._parse_quota(
                await self.remote.call("get-quota", {"identityId": identity_id})
            )
            if quota is not None:
                self._raise_local_count(quota.used_generations)
                return quota
            logger.info(f"Remote quota unavailable for {identity_id}, using local counter")

        return self._local_quota()

    async def can_proceed(self, identity_id: Optional[str] = None) -> bool:
        quota = await self.get_quota(identity_id)
        return self.is_allowed(quota)

    @staticmethod
    def is_allowed(quota: UserQuota) -> bool:
        if quota.is_premium:
            return True
        return quota.used_generations < quota.limit

    async def record_usage(self, identity_id: Optional[str] = None) -> None:
        # Local first so usage is kept even offline; the store never raises
        self.increment_local_count()

        if identity_id:
            result = await self.remote.call("increment-quota", {"identityId": identity_id})
            if result is None:
                logger.info(f"Remote usage increment failed for {identity_id}")

    async def reconcile_on_login(self, identity_id: str) -> UserQuota:
        local_count = self.get_local_count()

        quota = self._parse_quota(
            await self.remote.call(
                "sync-quota", {"identityId": identity_id, "localCount": local_count}
            )
        )
        if quota is not None:
            self.local.write(StorageKeys.QUOTA, str(quota.used_generations))
            logger.info(
                f"Quota reconciled for {identity_id}: local={local_count} "
                f"merged={quota.used_generations}"
            )
            return quota

        logger.warning(f"Quota sync failed for {identity_id}, keeping local counter")
        return self._local_quota(local_count)

    # --- Local counter ---

    def get_local_count(self) -> int:
        stored = self.local.read(StorageKeys.QUOTA)
        if not stored:
            return 0
        try:
            return max(0, int(stored.strip()))
        except ValueError:
            return 0

    def increment_local_count(self) -> int:
        # Read and write with no await in between, so increments in this
        # process can not interleave
        count = self.get_local_count() + 1
        self.local.write(StorageKeys.QUOTA, str(count))
        return count

    def _raise_local_count(self, observed: int) -> None:
        if observed > self.get_local_count():
            self.local.write(StorageKeys.QUOTA, str(observed))

    def _local_quota(self, count: Optional[int] = None) -> UserQuota:
        return UserQuota(
            used_generations=self.get_local_count() if count is None else count,
            limit=self.free_limit,
            is_premium=False,
        )

    @staticmethod
    def _parse_quota(data) -> Optional[UserQuota]:
        if not isinstance(data, dict):
            return None
        try:
            return UserQuota.model_validate(data)
        except ValidationError:
            logger.debug("Discarding malformed quota response")
            return None
