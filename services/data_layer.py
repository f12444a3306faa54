"""
Data layer facade.

`DataLayer` wires the capabilities a host platform supplies (a storage backend
and a remote caller) into the repositories, the quota service and the checkout
service, and is the one object an application needs to hold on to.
"""

import asyncio
import logging
from typing import Optional, Set

from core.config import Settings, get_settings
from core.storage import FileStorageBackend, LocalStore, MemoryStorageBackend, StorageBackend
from providers.identity_provider import IdentityProvider
from providers.remote_caller import HttpRemoteCaller, RemoteCaller
from services.checkout_service import CheckoutService
from services.quota_service import QuotaService
from services.repositories import HistoryRepository, ProfileRepository, UserRepository
from services.session_service import SessionService

logger = logging.getLogger(__name__)


class DataLayer:
    """Entry point to users, history, profiles, quota and checkout"""

    def __init__(self, remote: RemoteCaller, backend: StorageBackend, settings: Settings):
        self.settings = settings
        self.remote = remote
        self.local = LocalStore(backend)

        self.users = UserRepository(remote, self.local)
        self.history = HistoryRepository(
            remote, self.local, max_items=settings.max_local_history_items
        )
        self.profiles = ProfileRepository(remote, self.local)
        self.quota = QuotaService(
            remote, self.local, free_limit=settings.free_generation_limit
        )
        self.checkout = CheckoutService(remote, settings.app_base_url)

        self._background: Set[asyncio.Task] = set()

    def init(self) -> asyncio.Task:
        """Ask the backend to prepare its tables without waiting for it"""
        task = asyncio.create_task(self.remote.call("init-db"))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def attach_session(self, identity_provider: IdentityProvider) -> SessionService:
        return SessionService(identity_provider, self.users, self.quota)

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)


def build_data_layer(
    settings: Optional[Settings] = None,
    backend: Optional[StorageBackend] = None,
    remote: Optional[RemoteCaller] = None,
) -> DataLayer:
    """Build a DataLayer from settings, filling in default capabilities"""
    settings = settings or get_settings()

    if backend is None:
        if settings.local_store_path:
            backend = FileStorageBackend(settings.local_store_path)
        else:
            logger.warning("LOCAL_STORE_PATH not set, local data will not survive restarts")
            backend = MemoryStorageBackend()

    if remote is None:
        remote = HttpRemoteCaller(
            settings.data_api_url, timeout=settings.data_api_timeout_seconds
        )

    return DataLayer(remote, backend, settings)
