"""
Recommendation endpoint: auth, rate limiting, snapshot assembly from stored
readings and response shaping.
"""

import os

import pytest

from auragrow.services.store import get_reading_store
from auragrow.utils.auth import issue_token
from conftest import FakeResponse, FakeSession, gemini_envelope


RESULT = '{"total_plants": 1, "plants": [{"name": "Snake Plant", "type": "indoor", "why": "hardy", "how_many": 1, "placement": "bedroom", "confidence": 0.9}], "notes": "ok"}'


# ─────────────────────────────────────────────────────────────────────────────
# Authentication
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("headers, error", [
    ({}, "Missing Authorization header"),
    ({"Authorization": "Token abc"}, "Invalid Authorization format"),
    ({"Authorization": "Bearer not-a-real-token"}, "Invalid token"),
])
def test_requires_valid_bearer_token(client, headers, error):
    response = client.post("/api/ai-plants", json={"aqi": 2}, headers=headers)
    assert response.status_code == 401
    assert response.get_json() == {"error": error}


# ─────────────────────────────────────────────────────────────────────────────
# Response shaping
# ─────────────────────────────────────────────────────────────────────────────

def test_success_shape(app, client, auth_headers, install_client):
    session = FakeSession(FakeResponse(200, gemini_envelope(RESULT)))
    install_client(app, session)

    response = client.post("/api/ai-plants", json={"aqi": 2}, headers=auth_headers())
    assert response.status_code == 200
    data = response.get_json()
    assert data["success"] is True
    assert data["data"]["plants"][0]["name"] == "Snake Plant"


def test_graceful_failure_is_200_with_fallback(client, auth_headers):
    # TestConfig has no GEMINI_API_KEY
    response = client.post("/api/ai-plants", json={"aqi": 2}, headers=auth_headers())
    assert response.status_code == 200
    data = response.get_json()
    assert data["success"] is False
    assert data["aiError"] == "no_api_key"
    assert data["message"]
    assert data["fallback"]["total_plants"] == len(data["fallback"]["plants"]) == 1


def test_invalid_payload_when_nothing_known(app, client, auth_headers, install_client):
    session = FakeSession()
    install_client(app, session)
    response = client.post("/api/recommend", json={"humidity": 60}, headers=auth_headers())
    data = response.get_json()
    assert data["aiError"] == "invalid_payload"
    assert session.calls == []


def test_transport_error_surfaces_kind(app, client, auth_headers, install_client):
    install_client(app, FakeSession(FakeResponse(401, {"error": "bad key"})))
    response = client.post("/api/ai-plants", json={"aqi": 2}, headers=auth_headers())
    assert response.status_code == 200
    assert response.get_json()["aiError"] == "auth_error"


@pytest.mark.parametrize("status, kind", [(400, "bad_request"), (401, "auth_error"), (503, "request_failed")])
def test_provider_http_errors_reach_the_caller_as_json(make_app, install_client, status, kind):
    app = make_app(PROPAGATE_EXCEPTIONS=False)
    install_client(app, FakeSession(FakeResponse(status, {"error": {"message": "nope"}})))
    client = app.test_client()
    with app.app_context():
        headers = {"Authorization": f"Bearer {issue_token({'id': 'user-1'})}"}

    response = client.post("/api/ai-plants", json={"aqi": 2}, headers=headers)
    assert response.status_code == 200
    data = response.get_json()
    assert data["success"] is False
    assert data["aiError"] == kind
    assert data["message"]
    assert data["fallback"]["plants"][0]["name"] == "Spider Plant"


def test_failure_is_logged_with_kind_and_detail(app, client, auth_headers, caplog):
    caplog.set_level("WARNING")
    client.post("/api/ai-plants", json={"aqi": 2}, headers=auth_headers())
    assert "AI responded with error" in caplog.text
    assert "kind=no_api_key" in caplog.text
    assert "detail=" in caplog.text


def test_boolean_aqi_is_invalid_payload(app, client, auth_headers, install_client):
    session = FakeSession()
    install_client(app, session)
    response = client.post("/api/ai-plants", json={"aqi": True}, headers=auth_headers())
    assert response.get_json()["aiError"] == "invalid_payload"
    assert session.calls == []


def test_unexpected_error_is_500_without_fallback(app, client, auth_headers, install_client):
    install_client(app, FakeSession())
    readings = os.path.join(app.config["DATA_DIR"], "readings.json")
    os.makedirs(app.config["DATA_DIR"], exist_ok=True)
    with open(readings, "w", encoding="utf-8") as f:
        f.write("{corrupt")

    response = client.post("/api/ai-plants", json={"aqi": 2}, headers=auth_headers())
    assert response.status_code == 500
    data = response.get_json()
    assert data["error"] == "AI recommendation failed"
    assert "details" in data
    assert "fallback" not in data


# ─────────────────────────────────────────────────────────────────────────────
# Snapshot from stored readings
# ─────────────────────────────────────────────────────────────────────────────

def test_stored_reading_fills_missing_fields(app, client, auth_headers, install_client):
    session = FakeSession(FakeResponse(200, gemini_envelope(RESULT)))
    install_client(app, session)
    with app.app_context():
        store = get_reading_store()
        store.append({"userId": "user-1", "aqi": 4, "city": "Old", "humidity": 20})
        store.append({"userId": "user-2", "aqi": 1, "city": "Someone else"})

    response = client.post("/api/ai-plants", json={"city": "New"}, headers=auth_headers("user-1"))
    assert response.get_json()["success"] is True

    prompt = session.calls[0][1]["json"]["contents"][0]["parts"][0]["text"]
    assert '"aqi": 4' in prompt
    assert '"city": "New"' in prompt
    assert '"humidity": 20' in prompt
    assert '"pollution_value": 95' in prompt


# ─────────────────────────────────────────────────────────────────────────────
# Rate limiting
# ─────────────────────────────────────────────────────────────────────────────

def test_seventh_request_in_a_minute_is_rejected(make_app, install_client):
    app = make_app(RATELIMIT_ENABLED=True)
    session = FakeSession(FakeResponse(200, gemini_envelope(RESULT)))
    install_client(app, session)
    client = app.test_client()
    with app.app_context():
        headers = {"Authorization": f"Bearer {issue_token({'id': 'user-1'})}"}

    for _ in range(6):
        assert client.post("/api/ai-plants", json={"aqi": 2}, headers=headers).status_code == 200

    # Invalid payload does not matter; the limiter answers first
    response = client.post("/api/ai-plants", json={"bogus": True}, headers=headers)
    assert response.status_code == 429
    assert response.get_json() == {"error": "Too many AI requests, slow down"}
    assert len(session.calls) == 6


def test_alias_shares_the_ai_window(make_app, install_client):
    app = make_app(RATELIMIT_ENABLED=True)
    session = FakeSession(FakeResponse(200, gemini_envelope(RESULT)))
    install_client(app, session)
    client = app.test_client()
    with app.app_context():
        headers = {"Authorization": f"Bearer {issue_token({'id': 'user-1'})}"}

    for i in range(6):
        path = "/api/ai-plants" if i % 2 else "/api/recommend"
        assert client.post(path, json={"aqi": 2}, headers=headers).status_code == 200

    assert client.post("/api/recommend", json={"aqi": 2}, headers=headers).status_code == 429
    assert len(session.calls) == 6


def test_limit_is_per_client_address(make_app, install_client):
    app = make_app(RATELIMIT_ENABLED=True)
    install_client(app, FakeSession(FakeResponse(200, gemini_envelope(RESULT))))
    client = app.test_client()
    with app.app_context():
        headers = {"Authorization": f"Bearer {issue_token({'id': 'user-1'})}"}

    for _ in range(6):
        client.post("/api/ai-plants", json={"aqi": 2}, headers=headers,
                    environ_base={"REMOTE_ADDR": "10.0.0.1"})
    other = client.post("/api/ai-plants", json={"aqi": 2}, headers=headers,
                        environ_base={"REMOTE_ADDR": "10.0.0.2"})
    assert other.status_code == 200


def test_disabled_app_does_not_switch_off_limiting_elsewhere(make_app, install_client):
    make_app()  # TestConfig: RATELIMIT_ENABLED = False
    app = make_app(RATELIMIT_ENABLED=True)
    install_client(app, FakeSession(FakeResponse(200, gemini_envelope(RESULT))))
    client = app.test_client()
    with app.app_context():
        headers = {"Authorization": f"Bearer {issue_token({'id': 'user-1'})}"}

    for _ in range(6):
        assert client.post("/api/ai-plants", json={"aqi": 2}, headers=headers).status_code == 200
    assert client.post("/api/ai-plants", json={"aqi": 2}, headers=headers).status_code == 429
