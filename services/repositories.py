"""
Entity Repositories.

This module composes the Bounded Remote Caller and the Local Durable Store into
one source of truth per entity: the user profile, the generation history and
the saved brief profiles.

Key Components:
- `Repository`: Shared helpers for validating remote data against the wire
  models and for reading/writing list snapshots in local storage.
- `UserRepository`: The signed-in user's profile, keyed by the derived id.
- `HistoryRepository`: Generated concepts, de-duplicated by id and bounded to
  the newest items locally.
- `ProfileRepository`: Named, reusable briefs with replace-by-id semantics.

Read policy (remote-preferred, local-fallback):
1. Ask the remote store.
2. If it returns a non-empty, well-formed result, overwrite the local mirror
   with it and return it.
3. Otherwise return the local mirror, possibly empty. An empty remote list is
   treated as "no answer", never as "the remote says there is nothing".

Write policy (local-guaranteed, remote-best-effort):
1. Write the local mirror first, before any network attempt.
2. Await the remote write. A remote failure never rolls back the local write.
"""

import logging
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from core.config import MAX_LOCAL_HISTORY_ITEMS
from core.models import BriefProfile, HistoryItem, UserProfile, WireModel
from core.storage import LocalStore, StorageKeys
from providers.remote_caller import RemoteCaller

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class Repository:
    """Shared remote/local plumbing for the entity repositories"""

    def __init__(self, remote: RemoteCaller, local: LocalStore):
        self.remote = remote
        self.local = local

    @staticmethod
    def _parse(model: Type[ModelT], data: Any) -> Optional[ModelT]:
        if not isinstance(data, dict):
            return None
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Discarding malformed {model.__name__}: {e.error_count()} errors")
            return None

    def _parse_remote_list(self, model: Type[ModelT], data: Any) -> List[ModelT]:
        """A remote list is usable only if every element is well-formed"""
        if not isinstance(data, list) or not data:
            return []
        items = []
        for entry in data:
            item = self._parse(model, entry)
            if item is None:
                logger.warning(f"Remote {model.__name__} list has malformed entries, ignoring it")
                return []
            items.append(item)
        return items

    def _load_list(self, key: str, model: Type[ModelT]) -> List[ModelT]:
        """Local snapshot, skipping any entry that no longer validates"""
        data = self.local.read_json(key, default=[])
        if not isinstance(data, list):
            return []
        items = []
        for entry in data:
            item = self._parse(model, entry)
            if item is not None:
                items.append(item)
        return items

    def _store_list(self, key: str, items: List[WireModel]) -> None:
        self.local.write_json(key, [item.to_wire() for item in items])


class UserRepository(Repository):
    """User profile persistence"""

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        user = self._parse(UserProfile, await self.remote.call("get-user", {"id": user_id}))
        if user is not None:
            self.local.write_json(StorageKeys.USER, user.to_wire())
            return user

        return self.local_user(user_id)

    async def save_user(self, user: UserProfile) -> None:
        self.local.write_json(StorageKeys.USER, user.to_wire())
        await self.remote.call("save-user", user.to_wire())

    def local_user(self, user_id: str) -> Optional[UserProfile]:
        user = self._parse(UserProfile, self.local.read_json(StorageKeys.USER))
        if user is None or user.id != user_id:
            return None
        return user


class HistoryRepository(Repository):
    """Generation history persistence"""

    def __init__(
        self,
        remote: RemoteCaller,
        local: LocalStore,
        max_items: int = MAX_LOCAL_HISTORY_ITEMS,
    ):
        super().__init__(remote, local)
        self.max_items = max_items

    async def get_history(self) -> List[HistoryItem]:
        items = self._parse_remote_list(HistoryItem, await self.remote.call("get-history"))
        if items:
            items = self._bounded(items)
            self._store_list(StorageKeys.HISTORY, items)
            return items

        return self.local_history()

    async def save_history_item(self, item: HistoryItem) -> None:
        current = self.local_history()
        updated = self._bounded([item] + [i for i in current if i.id != item.id])
        self._store_list(StorageKeys.HISTORY, updated)

        await self.remote.call("save-history", item.to_wire())

    def local_history(self) -> List[HistoryItem]:
        return self._load_list(StorageKeys.HISTORY, HistoryItem)

    def _bounded(self, items: List[HistoryItem]) -> List[HistoryItem]:
        # Newest first; stable so equal timestamps keep insertion order
        ordered = sorted(items, key=lambda i: i.timestamp, reverse=True)
        return ordered[: self.max_items]


class ProfileRepository(Repository):
    """Saved brief profile persistence"""

    async def get_profiles(self) -> List[BriefProfile]:
        profiles = self._parse_remote_list(
            BriefProfile, await self.remote.call("get-profiles")
        )
        if profiles:
            self._store_list(StorageKeys.PROFILES, profiles)
            return profiles

        return self.local_profiles()

    async def save_profile(self, profile: BriefProfile) -> None:
        current = self.local_profiles()
        updated = [profile] + [p for p in current if p.id != profile.id]
        self._store_list(StorageKeys.PROFILES, updated)

        await self.remote.call("save-profile", profile.to_wire())

    async def delete_profile(self, profile_id: str) -> None:
        current = self.local_profiles()
        self._store_list(
            StorageKeys.PROFILES, [p for p in current if p.id != profile_id]
        )

        await self.remote.call("delete-profile", {"id": profile_id})

    def local_profiles(self) -> List[BriefProfile]:
        return self._load_list(StorageKeys.PROFILES, BriefProfile)
