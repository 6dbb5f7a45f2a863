"""HTTP tests for the FastAPI app, using TestClient over an engine built on fakes."""

import dataclasses
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from conftest import FakeAsyncStream, FakeTextClient, build_engine, make_chunk, make_completion
from newsin.api.http import create_app, mask_user_id
from newsin.core.engine import format_citations
from newsin.core.errors import GENERIC_APOLOGY, MISSING_KEY_APOLOGY, TIMEOUT_APOLOGY
from openai import APITimeoutError

CHAT = {"messages": [{"role": "user", "content": "What happened in markets today?"}]}


def make_client(config, create, text_client, session_factory) -> TestClient:
    engine = build_engine(config, create, text_client, session_factory)
    return TestClient(create_app(config=config, engine=engine))


@pytest.fixture
def create():
    return AsyncMock(return_value=make_completion("Stocks rose.", ["https://news.example/1"]))


@pytest.fixture
def client(config, create, text_client, session_factory) -> TestClient:
    return make_client(config, create, text_client, session_factory)


class TestAssistantEndpoint:
    def test_returns_content_and_citations(self, client):
        response = client.post("/assistant/api", json=CHAT)

        assert response.status_code == 200
        assert response.json() == {"content": "Stocks rose.", "citations": ["https://news.example/1"]}
        assert response.headers["X-Request-ID"]

    def test_missing_messages_is_400(self, client):
        response = client.post("/assistant/api", json={"userContext": {}})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request: messages array is required"

    def test_malformed_user_context_is_generic_400(self, client):
        payload = dict(CHAT, userContext={"themes": {"selected": "climate"}})

        response = client.post("/assistant/api", json=payload)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_invalid_message_item_mentions_messages(self, client):
        response = client.post("/assistant/api", json={"messages": [{"role": "user"}]})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request: messages array is required"

    def test_missing_api_key_is_500_apology(self, config, create, text_client, session_factory):
        config = dataclasses.replace(config, perplexity_api_key="")
        client = make_client(config, create, text_client, session_factory)

        response = client.post("/assistant/api", json=CHAT)

        assert response.status_code == 500
        assert response.json() == {"content": MISSING_KEY_APOLOGY, "error": "Missing API key"}
        create.assert_not_called()

    def test_timeout_is_500_with_timeout_apology(self, config, text_client, session_factory):
        create = AsyncMock(side_effect=APITimeoutError(request=None))
        client = make_client(config, create, text_client, session_factory)

        response = client.post("/assistant/api", json=CHAT)

        assert response.status_code == 500
        body = response.json()
        assert body["content"] == TIMEOUT_APOLOGY
        assert "timed out" in body["error"]

    def test_upstream_error_is_500_with_generic_apology(self, config, text_client, session_factory):
        create = AsyncMock(side_effect=RuntimeError("boom"))
        client = make_client(config, create, text_client, session_factory)

        response = client.post("/assistant/api", json=CHAT)

        assert response.status_code == 500
        assert response.json() == {"content": GENERIC_APOLOGY, "error": "boom"}

    def test_user_context_reaches_system_prompt(self, client, create):
        payload = dict(CHAT, userContext={
            "business": {"sector": "other", "otherSector": "agritech"},
            "themes": {"selected": ["climate"]},
        })

        client.post("/assistant/api", json=payload)

        system = create.call_args.kwargs["messages"][0]
        assert system["role"] == "system"
        assert "The user works in the agritech sector." in system["content"]
        assert "They're tracking these key themes: climate." in system["content"]

    def test_saved_preferences_used_when_only_user_id(self, client, create):
        client.put("/users/reader-123456/preferences", json={"role": {"type": "investor"}})

        client.post("/assistant/api", json=dict(CHAT, userId="reader-123456"))

        assert "Their role is investor." in create.call_args.kwargs["messages"][0]["content"]


class TestStreamEndpoint:
    def test_streams_text_then_sources(self, config, text_client, session_factory):
        create = AsyncMock(return_value=FakeAsyncStream([
            make_chunk("Stocks rose sharply. ", ["https://news.example/1"]),
            make_chunk("Bonds fell"),
        ]))
        client = make_client(config, create, text_client, session_factory)

        response = client.post("/assistant/api/stream", json=CHAT)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.text == (
            "Stocks rose sharply. Bonds fell" + format_citations(["https://news.example/1"])
        )

    def test_open_failure_is_json_500(self, config, text_client, session_factory):
        create = AsyncMock(side_effect=RuntimeError("connection refused"))
        client = make_client(config, create, text_client, session_factory)

        response = client.post("/assistant/api/stream", json=CHAT)

        assert response.status_code == 500
        assert response.json()["error"] == "connection refused"

    def test_assistant_only_history_is_500(self, client):
        response = client.post(
            "/assistant/api/stream",
            json={"messages": [{"role": "assistant", "content": "Hello!"}]},
        )
        assert response.status_code == 500


class TestApiKeyGuard:
    def test_dev_without_bot_key_is_open(self, client):
        assert client.post("/assistant/api", json=CHAT).status_code == 200

    def test_dev_with_bot_key_requires_header(self, config, create, text_client, session_factory):
        config = dataclasses.replace(config, bot_api_key="secret")
        client = make_client(config, create, text_client, session_factory)

        assert client.post("/assistant/api", json=CHAT).status_code == 401
        assert client.post("/assistant/api", json=CHAT, headers={"X-API-KEY": "secret"}).status_code == 200

    def test_prod_always_requires_key(self, config, create, text_client, session_factory):
        config = dataclasses.replace(config, env="prod", bot_api_key="secret")
        client = make_client(config, create, text_client, session_factory)

        assert client.get("/users/u1/preferences").status_code == 401


class TestPreferencesEndpoints:
    def test_unknown_user_is_404(self, client):
        assert client.get("/users/nobody/preferences").status_code == 404

    def test_put_then_get(self, client):
        body = {
            "displayName": "Ana",
            "business": {"sector": "finance", "description": "a small bank"},
            "role": {"type": "other", "otherType": "compliance lead"},
            "themes": {"selected": ["regulation"], "custom": "crypto"},
        }

        put = client.put("/users/user-42/preferences", json=body)
        get = client.get("/users/user-42/preferences")

        assert put.status_code == 200
        assert get.status_code == 200
        data = get.json()
        assert data["userId"] == "user-42"
        assert data["displayName"] == "Ana"
        assert data["business"]["sector"] == "finance"
        assert data["role"]["otherType"] == "compliance lead"
        assert data["themes"] == {"selected": ["regulation"], "custom": "crypto"}
        assert data["updatedAt"]

    def test_partial_update_keeps_other_sections(self, client):
        client.put("/users/user-7/preferences", json={"themes": {"selected": ["energy"]}})
        client.put("/users/user-7/preferences", json={"displayName": "Bo"})

        data = client.get("/users/user-7/preferences").json()
        assert data["displayName"] == "Bo"
        assert data["themes"]["selected"] == ["energy"]


class TestGenerativeEndpoints:
    def test_summarize(self, client):
        response = client.post("/assistant/summarize", json={"text": "abcdef"})
        assert response.status_code == 200
        assert response.json() == {"content": "summary of 6 chars"}

    def test_recommendations(self, client):
        response = client.post(
            "/assistant/recommendations",
            json={"interests": ["AI", "energy"], "recentArticles": ["Chip exports"]},
        )
        assert response.json() == {"content": "recommendations for AI, energy"}

    def test_summarize_without_generative_key_is_500(self, config, create, session_factory):
        client = make_client(config, create, FakeTextClient(has_credentials=False), session_factory)
        response = client.post("/assistant/summarize", json={"text": "abc"})
        assert response.status_code == 500
        assert response.json()["error"] == "Missing generative API key"


def test_health_reports_components(client):
    data = client.get("/health").json()
    assert data == {
        "status": "healthy",
        "database": "ok",
        "search_api": "configured",
        "generative_api": "configured",
        "rewrite_enabled": False,
    }


def test_mask_user_id():
    assert mask_user_id(None) == "anonymous"
    assert mask_user_id("short") == "****"
    assert mask_user_id("Xk29aaaaaaaaQp1z") == "Xk29****Qp1z"


def test_generative_chat(client):
    response = client.post(
        "/assistant/chat",
        json={"history": [{"role": "user", "content": "Hi"}, {"role": "assistant", "content": "Hello!"}], "message": "Next?"},
    )
    assert response.status_code == 200
    assert response.json() == {"content": "2 turns then: Next?"}
