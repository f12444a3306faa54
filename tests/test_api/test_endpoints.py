import pytest
from fastapi import status
from httpx import ASGITransport, AsyncClient

from api.dependencies import get_action_dispatcher, get_table_initializer
from main import app


@pytest.fixture
async def client(dispatcher, table_initializer):
    """HTTP client bound to the app with an in-memory remote store."""
    app.dependency_overrides[get_action_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_table_initializer] = lambda: table_initializer
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestHealthEndpoints:
    """Test health check endpoints."""

    @pytest.mark.asyncio
    async def test_healthcheck(self, client):
        response = await client.get("/healthcheck")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "Hypeakz Data API"
        assert "timestamp" in data
        assert "version" in data

    @pytest.mark.asyncio
    async def test_detailed_health(self, client, table_initializer):
        await table_initializer.ensure_tables()

        response = await client.get("/monitoring/detailed")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        database = data["components"]["database"]
        assert data["status"] == "healthy"
        assert database["status"] == "healthy"
        assert database["tables_initialized"] is True
        assert database["info"]["database_type"] == "sqlite"


class TestActionEndpoint:
    """Test the remote action endpoint."""

    @pytest.mark.asyncio
    async def test_sync_and_get_quota(self, client):
        response = await client.post(
            "/api",
            json={"action": "sync-quota", "payload": {"identityId": "user-1", "localCount": 3}},
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"usedGenerations": 3, "limit": 10, "isPremium": False}

        response = await client.post(
            "/api", json={"action": "get-quota", "payload": {"identityId": "user-1"}}
        )
        assert response.json()["usedGenerations"] == 3

    @pytest.mark.asyncio
    async def test_missing_entity_is_json_null(self, client):
        response = await client.post(
            "/api", json={"action": "get-user", "payload": {"id": "nobody"}}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() is None

    @pytest.mark.asyncio
    async def test_payload_defaults_to_empty(self, client):
        response = await client.post("/api", json={"action": "get-history"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_unknown_action(self, client):
        response = await client.post("/api", json={"action": "drop-tables", "payload": {}})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data["error"] == "Unknown action: drop-tables"
        assert data["error_code"] == "UNKNOWN_ACTION"

    @pytest.mark.asyncio
    async def test_invalid_payload(self, client):
        response = await client.post(
            "/api",
            json={"action": "sync-quota", "payload": {"identityId": "user-1", "localCount": "x"}},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_checkout_not_configured_message(self, client):
        response = await client.post(
            "/api",
            json={
                "action": "create-checkout",
                "payload": {"identityId": "user-1", "userEmail": "jane@example.com"},
            },
        )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["error"] == "Checkout not configured (missing payment provider)"

    @pytest.mark.asyncio
    async def test_missing_action_rejected(self, client):
        response = await client.post("/api", json={"payload": {}})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_cors_preflight(self, client):
        response = await client.options(
            "/api",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
