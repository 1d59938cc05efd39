"""
Shared pytest fixtures.

Every test gets a fresh app (TestConfig) writing to its own temporary data
directory, and a recommendation client whose HTTP session is a fake, so no
test ever reaches Gemini or OpenWeather.
"""

import pytest
import requests

from auragrow import create_app
from auragrow.config import ProviderSettings
from auragrow.services.ai import RecommendationClient
from auragrow.services.weather import clear_weather_cache
from auragrow.utils.auth import issue_token


# ─────────────────────────────────────────────────────────────────────────────
# Fake transport
# ─────────────────────────────────────────────────────────────────────────────

class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ""

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """Records calls to post() and answers with a queued response or error."""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else FakeResponse(200, {})
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def gemini_envelope(text):
    """A generateContent response carrying `text` as the first candidate."""
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def make_app(tmp_path, monkeypatch):
    """Factory for apps with per-test data dir and optional config overrides."""
    monkeypatch.setenv("APP_CONFIG", "auragrow.config.TestConfig")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("OPENWEATHER_API_KEY", raising=False)
    clear_weather_cache()

    def _make(**overrides):
        config = {"DATA_DIR": str(tmp_path / "data")}
        config.update(overrides)
        return create_app(config)

    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def fake_session():
    return FakeSession(FakeResponse(200, gemini_envelope('{"total_plants": 0, "plants": []}')))


@pytest.fixture
def install_client():
    """Swap the app's recommendation client for one backed by a fake session."""
    def _install(app, session, api_key="test-key"):
        client = RecommendationClient(ProviderSettings(api_key=api_key), session=session)
        app.extensions["recommendation_client"] = client
        return client

    return _install


@pytest.fixture
def auth_headers(app):
    """Bearer headers for a user id (defaults to "user-1")."""
    def _headers(user_id="user-1", email="ada@example.com", name="Ada"):
        with app.app_context():
            token = issue_token({"id": user_id, "email": email, "name": name})
        return {"Authorization": f"Bearer {token}"}

    return _headers
