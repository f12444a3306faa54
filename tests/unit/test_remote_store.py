"""
Unit tests for the reference remote store and action dispatcher.

Runs against an in-memory SQLite database.
"""
from unittest.mock import AsyncMock, Mock

import pytest

from core.exceptions import (
    CheckoutError,
    PayloadValidationError,
    UnknownActionError,
)
from core.models import CheckoutSession


class TestQuotaActions:
    """Test quota persistence semantics"""

    @pytest.mark.asyncio
    async def test_get_quota_defaults(self, dispatcher):
        quota = await dispatcher.dispatch("get-quota", {"identityId": "user-new"})
        assert quota == {"usedGenerations": 0, "limit": 10, "isPremium": False}

    @pytest.mark.asyncio
    async def test_increment_creates_then_adds(self, dispatcher):
        await dispatcher.dispatch("increment-quota", {"identityId": "user-1"})
        await dispatcher.dispatch("increment-quota", {"identityId": "user-1"})

        quota = await dispatcher.dispatch("get-quota", {"identityId": "user-1"})
        assert quota["usedGenerations"] == 2

    @pytest.mark.asyncio
    async def test_sync_new_identity_stores_local_count(self, dispatcher):
        quota = await dispatcher.dispatch(
            "sync-quota", {"identityId": "user-1", "localCount": 4}
        )
        assert quota["usedGenerations"] == 4

    @pytest.mark.asyncio
    async def test_sync_keeps_maximum(self, dispatcher):
        await dispatcher.dispatch("sync-quota", {"identityId": "user-1", "localCount": 6})

        lower = await dispatcher.dispatch(
            "sync-quota", {"identityId": "user-1", "localCount": 2}
        )
        higher = await dispatcher.dispatch(
            "sync-quota", {"identityId": "user-1", "localCount": 8}
        )

        assert lower["usedGenerations"] == 6
        assert higher["usedGenerations"] == 8

    @pytest.mark.asyncio
    async def test_sync_is_idempotent(self, dispatcher):
        payload = {"identityId": "user-1", "localCount": 3}
        first = await dispatcher.dispatch("sync-quota", payload)
        second = await dispatcher.dispatch("sync-quota", payload)

        assert first == second
        assert second["usedGenerations"] == 3

    @pytest.mark.asyncio
    async def test_sync_after_increments_never_sums(self, dispatcher):
        for _ in range(5):
            await dispatcher.dispatch("increment-quota", {"identityId": "user-1"})

        quota = await dispatcher.dispatch(
            "sync-quota", {"identityId": "user-1", "localCount": 3}
        )
        assert quota["usedGenerations"] == 5

    @pytest.mark.asyncio
    async def test_local_count_must_be_integer(self, dispatcher):
        with pytest.raises(PayloadValidationError):
            await dispatcher.dispatch(
                "sync-quota", {"identityId": "user-1", "localCount": "3"}
            )

    @pytest.mark.asyncio
    async def test_local_count_must_not_be_negative(self, dispatcher):
        with pytest.raises(PayloadValidationError):
            await dispatcher.dispatch(
                "sync-quota", {"identityId": "user-1", "localCount": -1}
            )


class TestSubscription:
    """Test premium flags"""

    @pytest.mark.asyncio
    async def test_unknown_identity_is_not_premium(self, dispatcher):
        result = await dispatcher.dispatch("check-subscription", {"identityId": "nobody"})
        assert result == {"isPremium": False}

    @pytest.mark.asyncio
    async def test_set_premium(self, remote_store, dispatcher):
        await dispatcher.dispatch("sync-quota", {"identityId": "user-1", "localCount": 12})
        await remote_store.set_premium("user-1", True, customer_id="cus_1", subscription_id="sub_1")

        assert await dispatcher.dispatch(
            "check-subscription", {"identityId": "user-1"}
        ) == {"isPremium": True}
        quota = await dispatcher.dispatch("get-quota", {"identityId": "user-1"})
        assert quota == {"usedGenerations": 12, "limit": 10, "isPremium": True}

        await remote_store.set_premium("user-1", False)
        assert await dispatcher.dispatch(
            "check-subscription", {"identityId": "user-1"}
        ) == {"isPremium": False}

    @pytest.mark.asyncio
    async def test_clear_subscription_by_id(self, remote_store, dispatcher):
        await remote_store.set_premium("user-1", True, subscription_id="sub_1")
        await remote_store.set_premium("user-2", True, subscription_id="sub_2")

        assert await remote_store.clear_subscription("sub_1") == 1
        assert await remote_store.clear_subscription("sub_unknown") == 0

        assert await dispatcher.dispatch(
            "check-subscription", {"identityId": "user-1"}
        ) == {"isPremium": False}
        assert await dispatcher.dispatch(
            "check-subscription", {"identityId": "user-2"}
        ) == {"isPremium": True}


class TestEntityActions:
    """Test user, history and profile actions"""

    @pytest.mark.asyncio
    async def test_user_roundtrip_keeps_created_at(self, dispatcher, sample_user):
        await dispatcher.dispatch("save-user", sample_user.to_wire())
        updated = sample_user.model_copy(update={"brand": "New Brand", "created_at": 1})
        await dispatcher.dispatch("save-user", updated.to_wire())

        user = await dispatcher.dispatch("get-user", {"id": sample_user.id})

        assert user["brand"] == "New Brand"
        assert user["createdAt"] == sample_user.created_at

    @pytest.mark.asyncio
    async def test_missing_user(self, dispatcher):
        assert await dispatcher.dispatch("get-user", {"id": "nobody"}) is None

    @pytest.mark.asyncio
    async def test_history_newest_first_and_limited(self, dispatcher, make_history_item):
        for i in range(25):
            await dispatcher.dispatch(
                "save-history", make_history_item(f"h{i}", 1000 + i).to_wire()
            )

        history = await dispatcher.dispatch("get-history")

        assert len(history) == 20
        assert history[0]["id"] == "h24"
        assert history[-1]["id"] == "h5"
        assert history[0]["brief"]["productContext"] == "Sneakers"

    @pytest.mark.asyncio
    async def test_save_history_upserts(self, dispatcher, make_history_item):
        await dispatcher.dispatch("save-history", make_history_item("h1", 1000).to_wire())
        await dispatcher.dispatch(
            "save-history", make_history_item("h1", 2000, hook="again").to_wire()
        )

        history = await dispatcher.dispatch("get-history")
        assert len(history) == 1
        assert history[0]["concepts"][0]["hook"] == "again"

    @pytest.mark.asyncio
    async def test_profiles_ordered_by_name(self, dispatcher, make_brief_profile):
        await dispatcher.dispatch("save-profile", make_brief_profile("p1", "Zeta").to_wire())
        await dispatcher.dispatch("save-profile", make_brief_profile("p2", "Alpha").to_wire())

        profiles = await dispatcher.dispatch("get-profiles")
        assert [p["name"] for p in profiles] == ["Alpha", "Zeta"]

    @pytest.mark.asyncio
    async def test_delete_profile(self, dispatcher, make_brief_profile):
        await dispatcher.dispatch("save-profile", make_brief_profile("p1", "Alpha").to_wire())
        await dispatcher.dispatch("delete-profile", {"id": "p1"})
        await dispatcher.dispatch("delete-profile", {"id": "p1"})

        assert await dispatcher.dispatch("get-profiles") == []


class TestDispatcher:
    """Test routing and payload validation"""

    def test_all_actions_registered(self, dispatcher):
        assert dispatcher.actions == sorted(
            [
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
            ]
        )

    @pytest.mark.asyncio
    async def test_init_db(self, dispatcher, table_initializer):
        assert await dispatcher.dispatch("init-db") == {"success": True}
        assert table_initializer.initialized is True

    @pytest.mark.asyncio
    async def test_unknown_action(self, dispatcher):
        with pytest.raises(UnknownActionError) as exc_info:
            await dispatcher.dispatch("drop-everything", {})

        assert exc_info.value.details["action"] == "drop-everything"

    @pytest.mark.asyncio
    async def test_validation_error_names_fields(self, dispatcher):
        with pytest.raises(PayloadValidationError) as exc_info:
            await dispatcher.dispatch("save-user", {"id": "u1"})

        assert "email" in exc_info.value.message
        assert exc_info.value.error_code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_missing_payload(self, dispatcher):
        with pytest.raises(PayloadValidationError):
            await dispatcher.dispatch("get-quota", None)


class TestCreateCheckout:
    """Test checkout session creation on the store side"""

    @pytest.mark.asyncio
    async def test_not_configured(self, dispatcher):
        with pytest.raises(CheckoutError) as exc_info:
            await dispatcher.dispatch(
                "create-checkout", {"identityId": "user-1", "userEmail": "j@example.com"}
            )

        assert exc_info.value.message == "Checkout not configured (missing payment provider)"
        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_gateway_session_and_default_urls(self, remote_store, dispatcher):
        gateway = Mock()
        gateway.create_session = AsyncMock(
            return_value=CheckoutSession(session_id="cs_1", url="https://pay.example.com/cs_1")
        )
        remote_store.checkout_gateway = gateway

        result = await dispatcher.dispatch(
            "create-checkout", {"identityId": "user-1", "userEmail": "j@example.com"}
        )

        assert result == {"sessionId": "cs_1", "url": "https://pay.example.com/cs_1"}
        gateway.create_session.assert_awaited_once_with(
            "user-1",
            "j@example.com",
            "https://app.example.com/?checkout=success",
            "https://app.example.com/?checkout=cancelled",
        )

    @pytest.mark.asyncio
    async def test_gateway_failure_becomes_checkout_error(self, remote_store, dispatcher):
        gateway = Mock()
        gateway.create_session = AsyncMock(side_effect=RuntimeError("card network down"))
        remote_store.checkout_gateway = gateway

        with pytest.raises(CheckoutError) as exc_info:
            await dispatcher.dispatch(
                "create-checkout", {"identityId": "user-1", "userEmail": "j@example.com"}
            )

        assert exc_info.value.message == "card network down"
