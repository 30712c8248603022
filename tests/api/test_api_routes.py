"""HTTP tests for messaging, conversation, provider, widget and health endpoints."""

from tests.conftest import TENANT_ID, make_config

BASE = f"/api/tenants/{TENANT_ID}"


class TestMessageRoutes:
    async def test_send(self, api_client, backend, greenapi_tenant):
        response = await api_client.post(
            f"{BASE}/messages/send", json={"to": "+18095551234", "body": "Hi"}
        )

        assert response.status_code == 200
        assert response.json()["external_id"] == "FAKE0001"
        assert len(backend.sent) == 1

    async def test_validation_errors_use_400(self, api_client, greenapi_tenant):
        response = await api_client.post(f"{BASE}/messages/send", json={"body": "Hi"})

        body = response.json()
        assert response.status_code == 400
        assert body["detail"] == "Validation failed"
        assert body["type"] == "validation_error"
        assert body["errors"][0]["field"].endswith("to")

    async def test_rate_limit_is_429(self, api_client, config_store):
        await config_store.save(make_config(rate_limit_max_messages=1))

        await api_client.post(f"{BASE}/messages/send", json={"to": "+18095551234", "body": "1"})
        response = await api_client.post(
            f"{BASE}/messages/send", json={"to": "+18095551234", "body": "2"}
        )

        assert response.status_code == 429
        assert response.json()["type"] == "rate_limited"

    async def test_unconfigured_tenant_is_404(self, api_client):
        response = await api_client.post(
            "/api/tenants/999/messages/send", json={"to": "+18095551234", "body": "Hi"}
        )
        assert response.status_code == 404
        assert response.json()["type"] == "not_configured"

    async def test_bulk(self, api_client, greenapi_tenant):
        response = await api_client.post(
            f"{BASE}/messages/send/bulk",
            json={"recipients": ["+18095551111", "bad"], "body": "Promo"},
        )

        assert response.status_code == 200
        assert len(response.json()["sent"]) == 1
        assert response.json()["failed"][0]["to"] == "bad"


class TestConversationRoutes:
    async def test_list_get_and_messages(self, api_client, greenapi_tenant):
        sent = (
            await api_client.post(
                f"{BASE}/messages/send", json={"to": "+18095551234", "body": "Hi"}
            )
        ).json()
        conversation_id = sent["conversation_id"]

        listing = await api_client.get(f"{BASE}/conversations", params={"page_size": 5})
        detail = await api_client.get(f"{BASE}/conversations/{conversation_id}")
        messages = await api_client.get(f"{BASE}/conversations/{conversation_id}/messages")

        assert listing.status_code == 200
        assert listing.json()["total"] == 1
        assert listing.json()["total_pages"] == 1
        assert detail.json()["last_message_preview"] == "Hi"
        assert [m["id"] for m in messages.json()] == [sent["id"]]

    async def test_update_close_and_unknown(self, api_client, greenapi_tenant):
        sent = (
            await api_client.post(
                f"{BASE}/messages/send", json={"to": "+18095551234", "body": "Hi"}
            )
        ).json()
        conversation_id = sent["conversation_id"]

        updated = await api_client.put(
            f"{BASE}/conversations/{conversation_id}", json={"notes": "called back"}
        )
        closed = await api_client.post(f"{BASE}/conversations/{conversation_id}/close")
        missing = await api_client.get(f"{BASE}/conversations/does-not-exist")

        assert updated.json()["notes"] == "called back"
        assert closed.json()["status"] == "closed"
        assert missing.status_code == 404

    async def test_sync_requires_capability(self, api_client, twilio_tenant):
        response = await api_client.post(f"{BASE}/conversations/sync")

        assert response.status_code == 400
        assert response.json()["type"] == "capability_not_supported"


class TestProviderRoutes:
    async def test_supported_providers(self, api_client):
        response = await api_client.get("/api/providers")
        assert response.json()["providers"] == ["greenapi", "twilio"]

    async def test_provider_info_hides_credentials(self, api_client, greenapi_tenant):
        response = await api_client.get(f"{BASE}/provider")

        assert response.status_code == 200
        assert "secret-token" not in response.text
        assert response.json()["provider"] == "greenapi"

    async def test_connection(self, api_client, greenapi_tenant):
        response = await api_client.post(f"{BASE}/provider/test", json={})
        assert response.json()["success"] is True

    async def test_blacklist_lifecycle(self, api_client, greenapi_tenant):
        created = await api_client.post(
            f"{BASE}/blacklist", json={"address": "8095551234", "reason": "opt-out"}
        )
        listed = await api_client.get(f"{BASE}/blacklist")
        blocked = await api_client.post(
            f"{BASE}/messages/send", json={"to": "+18095551234", "body": "Hi"}
        )
        removed = await api_client.delete(f"{BASE}/blacklist/+18095551234")
        removed_again = await api_client.delete(f"{BASE}/blacklist/+18095551234")

        assert created.status_code == 201
        assert created.json()["address"] == "+18095551234"
        assert len(listed.json()) == 1
        assert blocked.status_code == 400
        assert blocked.json()["type"] == "blacklisted"
        assert removed.status_code == 200
        assert removed_again.status_code == 404


class TestWidgetRoutes:
    async def test_widget_round_trip(self, api_client):
        received = await api_client.post(
            f"/widget/{TENANT_ID}/messages",
            json={"session_id": "sess-1", "message": "Hi", "client_message_id": "c1"},
        )
        resent = await api_client.post(
            f"/widget/{TENANT_ID}/messages",
            json={"session_id": "sess-1", "message": "Hi", "client_message_id": "c1"},
        )
        conversation_id = received.json()["conversation_id"]
        await api_client.post(
            f"/widget/{TENANT_ID}/conversations/{conversation_id}/respond",
            json={"message": "Hello!", "agent_name": "Luis"},
        )
        poll = await api_client.get(f"/widget/{TENANT_ID}/sessions/sess-1/messages")
        closed = await api_client.post(
            f"/widget/{TENANT_ID}/conversations/{conversation_id}/close",
            json={"status": "archived"},
        )

        assert resent.json()["duplicate"] is True
        assert resent.json()["message"]["id"] == received.json()["message"]["id"]
        assert [m["body"] for m in poll.json()["messages"]] == ["Hello!"]
        assert closed.json()["status"] == "archived"

    async def test_empty_widget_message_is_400(self, api_client):
        response = await api_client.post(
            f"/widget/{TENANT_ID}/messages", json={"session_id": "sess-1", "message": ""}
        )
        assert response.status_code == 400


class TestHealthRoutes:
    async def test_health(self, api_client):
        response = await api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_detailed_health_without_database(self, api_client):
        response = await api_client.get("/health/detailed")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["cache"]["backend"] == "MemoryCache"
