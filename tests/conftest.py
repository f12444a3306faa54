import hashlib
import hmac
import pytest
import os
import sys
import time
from typing import Any, Dict, List, Optional

# In-memory database for anything that imports the API wiring
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import Settings
from core.database import TableInitializer, build_engine, build_session_factory
from core.exceptions import LocalStorageError
from core.models import BriefProfile, HistoryItem, MarketingBrief, UserProfile, ViralConcept
from core.storage import LocalStore, MemoryStorageBackend
from providers.remote_caller import InProcessRemoteCaller, RemoteCaller
from services.remote_store import ActionDispatcher, RemoteStore


class ScriptedRemoteCaller(RemoteCaller):
    """Remote caller that answers from a dict of action -> response.

    A response may be a value, an exception instance (raised), or a callable
    taking the payload. Missing actions answer None. Every call is recorded.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None, timeout: float = 1.0):
        super().__init__(timeout)
        self.responses = responses or {}
        self.calls: List[tuple] = []

    async def _send(self, action: str, payload: Dict[str, Any]) -> Any:
        self.calls.append((action, payload))
        response = self.responses.get(action)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(payload)
        return response

    def actions(self) -> List[str]:
        return [action for action, _ in self.calls]


def sign_webhook_payload(payload: str, secret: str, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header value for a payload, as Stripe computes it"""
    timestamp = timestamp or int(time.time())
    digest = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


class FailingStorageBackend(MemoryStorageBackend):
    """Backend whose reads and/or writes raise, like a private-mode browser"""

    def __init__(self, fail_reads: bool = False, fail_writes: bool = True):
        super().__init__()
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    def get_item(self, key):
        if self.fail_reads:
            raise LocalStorageError("read", key, "storage disabled")
        return super().get_item(key)

    def set_item(self, key, value):
        if self.fail_writes:
            raise LocalStorageError("write", key, "quota exceeded")
        super().set_item(key, value)


@pytest.fixture
def memory_backend():
    return MemoryStorageBackend()


@pytest.fixture
def local_store(memory_backend):
    return LocalStore(memory_backend)


@pytest.fixture
def scripted_remote():
    return ScriptedRemoteCaller()


@pytest.fixture
def offline_remote():
    """Every action fails as if the network were down"""
    return ScriptedRemoteCaller(
        responses={
            action: ConnectionError("network unreachable")
            for action in (
                "init-db",
                "get-user",
                "save-user",
                "get-history",
                "save-history",
                "get-profiles",
                "save-profile",
                "delete-profile",
                "get-quota",
                "increment-quota",
                "sync-quota",
                "check-subscription",
                "create-checkout",
            )
        }
    )


@pytest.fixture
def test_settings():
    return Settings(
        environment="test",
        data_api_url="http://test/api",
        data_api_timeout_seconds=1.0,
        database_url="sqlite+aiosqlite://",
        app_base_url="https://app.example.com",
    )


@pytest.fixture
async def db_engine():
    engine = build_engine("sqlite+aiosqlite://")
    yield engine
    await engine.dispose()


@pytest.fixture
def table_initializer(db_engine):
    return TableInitializer(db_engine)


@pytest.fixture
def remote_store(db_engine, table_initializer):
    return RemoteStore(
        build_session_factory(db_engine),
        table_initializer,
        app_base_url="https://app.example.com",
    )


@pytest.fixture
def dispatcher(remote_store):
    return ActionDispatcher(remote_store)


@pytest.fixture
def in_process_remote(dispatcher):
    return InProcessRemoteCaller(dispatcher, timeout=2.0)


@pytest.fixture
def make_history_item():
    def _make(item_id: str, timestamp: int, hook: str = "Stop scrolling") -> HistoryItem:
        return HistoryItem(
            id=item_id,
            timestamp=timestamp,
            concepts=[ViralConcept(hook=hook, script="script", strategy="curiosity")],
            brief=MarketingBrief(product_context="Sneakers", goal="sales", language="EN"),
        )

    return _make


@pytest.fixture
def make_brief_profile():
    def _make(profile_id: str, name: str) -> BriefProfile:
        return BriefProfile(
            id=profile_id,
            name=name,
            brief=MarketingBrief(product_context=name, target_audience="founders"),
        )

    return _make


@pytest.fixture
def sample_user():
    return UserProfile(
        id="user-abcdef123456",
        name="Jane Doe",
        brand="Acme",
        email="jane@example.com",
        phone="",
        created_at=1700000000000,
    )

