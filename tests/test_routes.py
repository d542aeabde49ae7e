"""Tests for the HTTP surface (chat stream, health, metrics).

This module tests the route endpoints:
- POST /api/chat/stream with a mocked upstream provider
- GET /health and GET /metrics
"""
import json

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chatrelay.adapters.llm.factory import build_adapters
from chatrelay.app.dependencies import get_app_state
from chatrelay.app.routes import chat, health
from chatrelay.config.schema import ChatRelayConfig
from chatrelay.core.credentials import CredentialResolver
from chatrelay.core.model_registry import ModelRegistry
from chatrelay.core.relay import StreamRelay

OPENAI_STREAM = "".join(
    f"data: {unit}\n\n"
    for unit in [
        json.dumps({"choices": [{"delta": {"content": "Hi"}}]}),
        json.dumps({"choices": [{"delta": {"content": " there"}}]}),
        json.dumps({"choices": [{"delta": {"content": "!"}, "finish_reason": "stop"}]}),
        json.dumps({"choices": [], "usage": {"prompt_tokens": 5, "completion_tokens": 3, "total_tokens": 8}}),
        "[DONE]",
    ]
).encode()

GEMINI_STREAM = "".join(
    f"data: {json.dumps(unit)}\n\n"
    for unit in [
        {"candidates": [{"content": {"parts": [{"text": "Sunny"}]}}]},
        {
            "candidates": [{"content": {"parts": [{"text": "."}]}, "finishReason": "STOP"}],
            "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 2, "totalTokenCount": 6},
        },
    ]
).encode()


@pytest.fixture
def upstream_requests():
    """Requests received by the mocked provider."""
    return []


@pytest.fixture
def client(monkeypatch, keystore, credential_store, upstream_requests):
    """Test client with a relay wired to mocked OpenAI and Gemini upstreams."""
    def handler(request: httpx.Request) -> httpx.Response:
        upstream_requests.append(request)
        body = GEMINI_STREAM if "streamGenerateContent" in request.url.path else OPENAI_STREAM
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body)

    config = ChatRelayConfig()
    registry = ModelRegistry.from_config(config.registry)
    resolver = CredentialResolver(registry, credential_store, keystore, build_adapters(config.providers))
    relay = StreamRelay(
        resolver=resolver,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    monkeypatch.setattr(get_app_state(), "relay", relay)

    app = FastAPI()
    app.include_router(health.router)
    app.include_router(chat.router)
    return TestClient(app)


class TestChatStreamRoute:
    """Tests for POST /api/chat/stream."""

    def test_stream_success(self, client, upstream_requests):
        """Test a full relayed stream over HTTP."""
        response = client.post(
            "/api/chat/stream",
            json={"messages": [{"role": "user", "content": "Hello"}], "model": "gpt-4o"},
            headers={"X-User-ID": "user-1"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache, no-transform"
        assert response.headers["x-request-id"].startswith("req_")
        assert response.text == (
            'data: {"content": "Hi"}\n\n'
            'data: {"content": " there"}\n\n'
            'data: {"content": "!"}\n\n'
            "data: [DONE]\n\n"
        )
        assert len(upstream_requests) == 1
        assert upstream_requests[0].headers["Authorization"] == "Bearer sk-test-openai"

    def test_default_model(self, client, upstream_requests):
        """Test that a request without a model uses the default model."""
        response = client.post(
            "/api/chat/stream",
            json={"messages": [{"role": "user", "content": "Hello"}]},
            headers={"X-User-ID": "user-1"},
        )

        assert response.status_code == 200
        assert json.loads(upstream_requests[0].content)["model"] == "gpt-4o"

    def test_search_grounding_camel_case_field(self, client, keystore, credential_store, upstream_requests):
        """Test searchGrounding reaches a natively grounded provider as its search tool."""
        credential_store.put("user-1", "gemini", keystore.encrypt("gm-test-key"))

        response = client.post(
            "/api/chat/stream",
            json={
                "messages": [{"role": "user", "content": "Weather in Paris?"}],
                "model": "gemini-2.0-flash",
                "searchGrounding": True,
            },
            headers={"X-User-ID": "user-1"},
        )

        assert response.status_code == 200
        assert response.text.endswith("data: [DONE]\n\n")
        assert upstream_requests[0].headers["x-goog-api-key"] == "gm-test-key"
        assert json.loads(upstream_requests[0].content)["tools"] == [{"google_search": {}}]

    @pytest.mark.parametrize("field,value", [("searchGrounding", False), ("search_grounding", True)])
    def test_search_grounding_field_names(self, client, keystore, credential_store, upstream_requests, field, value):
        """Test both field spellings are honoured."""
        credential_store.put("user-1", "gemini", keystore.encrypt("gm-test-key"))

        client.post(
            "/api/chat/stream",
            json={"messages": [{"role": "user", "content": "Hi"}], "model": "gemini-2.0-flash", field: value},
            headers={"X-User-ID": "user-1"},
        )

        assert ("tools" in json.loads(upstream_requests[0].content)) is value

    def test_missing_credential_is_in_stream_error(self, client, upstream_requests):
        """Test that a provider without a stored key yields one error event."""
        response = client.post(
            "/api/chat/stream",
            json={"messages": [{"role": "user", "content": "Hello"}], "model": "claude-3-5-sonnet-20241022"},
            headers={"X-User-ID": "user-1"},
        )

        assert response.status_code == 200
        assert response.text == (
            'data: {"error": "No API key found for anthropic. Please add one in Settings."}\n\n'
        )
        assert upstream_requests == []

    def test_missing_user_header(self, client, upstream_requests):
        """Test that requests without a user identity are rejected before streaming."""
        response = client.post(
            "/api/chat/stream",
            json={"messages": [{"role": "user", "content": "Hello"}]},
        )

        assert response.status_code == 401
        assert upstream_requests == []

    @pytest.mark.parametrize("body", [
        {"messages": []},
        {"messages": [{"role": "tool", "content": "x"}]},
        {"model": "gpt-4o"},
    ])
    def test_invalid_body(self, client, body):
        """Test request validation."""
        response = client.post("/api/chat/stream", json=body, headers={"X-User-ID": "user-1"})
        assert response.status_code == 422


class TestHealthRoutes:
    """Tests for health and metrics endpoints."""

    def test_health(self, client):
        """Test health check reports ok once the relay is wired."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_metrics(self, client):
        """Test Prometheus exposition includes relay metrics."""
        client.post(
            "/api/chat/stream",
            json={"messages": [{"role": "user", "content": "Hello"}]},
            headers={"X-User-ID": "user-1"},
        )
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "chatrelay_requests_total" in response.text


class TestAppLifespan:
    """Tests for application startup wiring."""

    def test_startup_shares_registry_and_store(self, monkeypatch, tmp_path):
        """Test the relay resolves with the registry and store held on app state."""
        from chatrelay.app.main import app

        config_file = tmp_path / "config.yaml"
        config_file.write_text("relay:\n  connect_timeout_s: 2.5\n")
        monkeypatch.setenv("CHATRELAY_CONFIG", str(config_file))
        monkeypatch.setenv("CHATRELAY_KEYSTORE_SECRET", "lifespan-secret")
        monkeypatch.delenv("REDIS_URL", raising=False)

        state = get_app_state()
        for attr in ("config_loader", "registry", "http_client", "credential_store", "relay"):
            monkeypatch.setattr(state, attr, None)

        with TestClient(app) as test_client:
            assert test_client.get("/health").json()["status"] == "ok"
            assert state.relay.resolver.registry is state.registry
            assert state.relay.resolver.store is state.credential_store
            assert state.http_client.client.timeout.connect == 2.5
            assert state.relay.client is state.http_client.client

        assert state.relay is None
