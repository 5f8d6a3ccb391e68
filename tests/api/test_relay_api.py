"""
Relay HTTP API tests (FastAPI TestClient with the relay service overridden).
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from voicequiz.core.rate_limit import RATE_LIMIT_MESSAGE, limiter
from voicequiz.main import app
from voicequiz.services.openai_relay_service import RelayNotConfiguredError, UpstreamError, get_relay_service

TOKEN_BODY = {
    "deviceId": "device-1",
    "platform": "ios",
    "appVersion": "1.0.0",
    "gameMode": "modeA",
    "currentWord": "apple",
    "tabooWords": ["fruit", "red"],
}


@pytest.fixture
def service():
    mock = MagicMock()
    mock.create_client_secret = AsyncMock(return_value={"value": "ek_123", "expiresAt": 1700000600})
    mock.describe = AsyncMock(return_value="You bite into it.")
    mock.guess = AsyncMock(return_value="banana")
    return mock


@pytest.fixture
def client(service):
    limiter.reset()
    app.dependency_overrides[get_relay_service] = lambda: service
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    limiter.reset()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["timestamp"]

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "voicequiz_relay_rate_limited_total" in response.text

    def test_breakers(self, client):
        assert "openai" in client.get("/health/breakers").json()


class TestToken:
    def test_issues_credential(self, client, service):
        response = client.post("/token", json=TOKEN_BODY)
        assert response.status_code == 200
        assert response.json() == {"value": "ek_123", "expiresAt": 1700000600}
        service.create_client_secret.assert_awaited_once_with("modeA", current_word="apple", taboo=["fruit", "red"])

    def test_mode_b_needs_no_word(self, client, service):
        body = {k: v for k, v in TOKEN_BODY.items() if k not in ("currentWord", "tabooWords")}
        body["gameMode"] = "modeB"
        assert client.post("/token", json=body).status_code == 200
        service.create_client_secret.assert_awaited_once_with("modeB", current_word=None, taboo=None)

    def test_invalid_body(self, client, service):
        response = client.post("/token", json={**TOKEN_BODY, "gameMode": "modeC", "deviceId": ""})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request fields: deviceId, gameMode"
        service.create_client_secret.assert_not_awaited()

    def test_upstream_failure(self, client, service):
        service.create_client_secret.side_effect = UpstreamError(401, "bad key")
        response = client.post("/token", json=TOKEN_BODY)
        assert response.status_code == 401
        assert response.json() == {"error": "OpenAI API failed", "details": "bad key"}

    def test_not_configured(self, client, service):
        service.create_client_secret.side_effect = RelayNotConfiguredError("OPENAI_API_KEY is not configured")
        response = client.post("/token", json=TOKEN_BODY)
        assert response.status_code == 503
        assert response.json() == {"error": "Relay is not configured"}


class TestDescribe:
    def test_returns_hint(self, client, service):
        response = client.post("/modeA/describe", json={"word": "apple", "taboo": ["fruit"]})
        assert response.status_code == 200
        assert response.json() == {"text": "You bite into it."}
        service.describe.assert_awaited_once_with("apple", ["fruit"], [])

    @pytest.mark.parametrize("body", [{"taboo": ["fruit"]}, {"word": "apple"}, {"word": "", "taboo": []}])
    def test_missing_fields(self, client, service, body):
        response = client.post("/modeA/describe", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields: word, taboo"}
        service.describe.assert_not_awaited()

    def test_upstream_error(self, client, service):
        service.describe.side_effect = UpstreamError(500, "boom")
        response = client.post("/modeA/describe", json={"word": "apple", "taboo": []})
        assert response.status_code == 500
        assert response.json() == {"error": "OpenAI API failed", "details": "boom"}


class TestGuess:
    def test_returns_guess(self, client, service):
        response = client.post(
            "/modeB/guess",
            json={"transcriptSoFar": "it is yellow", "category": "Food", "previousGuesses": ["lemon"]},
        )
        assert response.status_code == 200
        assert response.json() == {"guessText": "banana"}
        service.guess.assert_awaited_once_with("it is yellow", "Food", ["lemon"])

    def test_missing_fields(self, client, service):
        response = client.post("/modeB/guess", json={"category": "Food"})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields: transcriptSoFar, category"}

    def test_unexpected_error(self, client, service):
        service.guess.side_effect = RuntimeError("unexpected")
        response = client.post("/modeB/guess", json={"transcriptSoFar": "it is", "category": "Food"})
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}


class TestRateLimit:
    def test_shared_budget_across_routes(self, client, monkeypatch):
        monkeypatch.setattr("voicequiz.core.rate_limit.settings.RATE_LIMIT", "2/minute")
        limiter.reset()

        assert client.post("/modeA/describe", json={"word": "apple", "taboo": []}).status_code == 200
        assert client.post("/modeB/guess", json={"transcriptSoFar": "it", "category": "Food"}).status_code == 200

        response = client.post("/token", json=TOKEN_BODY)
        assert response.status_code == 429
        assert response.json() == {"error": RATE_LIMIT_MESSAGE}

    def test_health_is_not_limited(self, client, monkeypatch):
        monkeypatch.setattr("voicequiz.core.rate_limit.settings.RATE_LIMIT", "1/minute")
        limiter.reset()
        for _ in range(3):
            assert client.get("/health").status_code == 200
