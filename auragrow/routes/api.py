"""
Defines JSON endpoints used by the dashboard.

Endpoints (all under /api):
- /signup, /login: flat-file accounts, bearer token on login
- /weather: current weather summary for lat/lon
- /pollution: air pollution for lat/lon, stored as a reading
- /reading: manual sensor reading (authenticated)
- /history: recent readings, optionally scoped to the caller
- /ai-plants, /recommend: AI plant recommendations with local fallback
"""

from __future__ import annotations
import time
import uuid
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from ..extensions import limiter
from ..services import weather
from ..services.ai import get_recommendation_client
from ..services.snapshot import build_recommendation_snapshot
from ..services.store import get_reading_store, get_user_store
from ..utils.auth import (
    check_password,
    get_current_user_id,
    get_optional_user_id,
    hash_password,
    issue_token,
    require_token,
)
from ..utils.errors import log_info, log_warning, sanitize_error
from ..utils.validation import (
    normalize_email,
    optional_number,
    parse_coordinates,
    parse_soil_moisture,
    validate_signup,
)


api_bp = Blueprint("api", __name__)

# /ai-plants and /recommend draw from the same per-address window
ai_limit = limiter.shared_limit(lambda: current_app.config["RATELIMIT_AI"], scope="ai")

MAX_HISTORY_PER_PAGE = 100
MANUAL_READING_FIELDS = ("aqi", "pm25", "pm10", "co", "no2", "o3", "nh3")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ============================================================================
# Accounts
# ============================================================================

@api_bp.route("/signup", methods=["POST"])
@limiter.limit(lambda: current_app.config["SIGNUP_RATE_LIMIT"])
def signup():
    """
    Create an account.

    Request body (JSON):
        {"name": "...", "email": "...", "password": "..."}

    Returns:
        200: {"success": true}
        400: {"error": "..."} (missing fields, invalid email, duplicate)
    """
    payload, error = validate_signup(_json_body())
    if error:
        return jsonify({"error": error}), 400

    users = get_user_store()
    try:
        created = users.create({
            "id": str(uuid.uuid4()),
            "name": payload["name"],
            "email": payload["email"],
            "passwordHash": hash_password(payload["password"]),
        })
    except Exception as e:
        return jsonify({"error": sanitize_error(e, "storage", "Signup failed")}), 500

    if not created:
        return jsonify({"error": "User already exists"}), 400

    log_info("signup: created user", user_id=created["id"])
    return jsonify({"success": True})


@api_bp.route("/login", methods=["POST"])
def login():
    """
    Exchange email + password for a bearer token.

    Returns:
        200: {"token": "...", "user": {"id", "name", "email"}}
        400: missing fields
        401: {"error": "Invalid credentials"}
    """
    data = _json_body()
    raw_email = data.get("email")
    password = data.get("password")
    if not raw_email or not password:
        return jsonify({"error": "email,password required"}), 400

    email = normalize_email(raw_email) or str(raw_email).strip().lower()
    try:
        user = get_user_store().find_by_email(email)
    except Exception as e:
        return jsonify({"error": sanitize_error(e, "storage", "Login failed")}), 500

    if not user or not check_password(user.get("passwordHash", ""), str(password)):
        log_warning("login: invalid credentials")
        return jsonify({"error": "Invalid credentials"}), 401

    return jsonify({
        "token": issue_token(user),
        "user": {"id": user["id"], "name": user.get("name"), "email": user.get("email")},
    })


# ============================================================================
# Weather & pollution proxies
# ============================================================================

def _coords_or_error():
    coords = parse_coordinates(request.args.get("lat"), request.args.get("lon"))
    if coords is None:
        return None, (jsonify({"error": "lat & lon required"}), 400)
    return coords, None


@api_bp.route("/weather")
def get_weather():
    """Current weather summary: temperature, humidity, condition, city."""
    coords, error = _coords_or_error()
    if error:
        return error
    key = weather.get_api_key()
    if not key:
        return jsonify({"error": "OpenWeatherMap key not configured"}), 500

    try:
        data = weather.get_current_weather(coords[0], coords[1], key)
    except weather.WeatherError as e:
        current_app.logger.error(f"Weather fetch failed: {e}")
        return jsonify({"error": "Weather fetch failed"}), 500
    return jsonify(weather.summarize_weather(data))


@api_bp.route("/pollution")
def get_pollution():
    """
    Fetch air pollution (plus humidity and city from current weather) and
    store it as a reading. With a valid bearer token the reading belongs to
    that user; an invalid token is ignored.

    Optional query: soil / soil_moisture (device-reported soil moisture).
    """
    coords, error = _coords_or_error()
    if error:
        return error
    key = weather.get_api_key()
    if not key:
        return jsonify({"error": "OpenWeatherMap key not configured"}), 500

    lat, lon = coords
    try:
        pollution = weather.get_air_pollution(lat, lon, key)
        current = weather.get_current_weather(lat, lon, key)
    except weather.WeatherError as e:
        current_app.logger.error(f"Pollution fetch failed: {e}")
        return jsonify({"error": "Pollution fetch failed"}), 500

    first = weather.first_pollution_entry(pollution)
    components = first.get("components") or {}
    soil_raw = request.args.get("soil")
    if soil_raw is None:
        soil_raw = request.args.get("soil_moisture")

    reading = {
        "timestamp": int(time.time() * 1000),
        "userId": get_optional_user_id(),
        "aqi": (first.get("main") or {}).get("aqi"),
        "main_pollutant": weather.main_pollutant(components),
        "components": components,
        "humidity": (current.get("main") or {}).get("humidity"),
        "soil_moisture": parse_soil_moisture(soil_raw),
        "weather": weather.weather_condition(current),
        "city": current.get("name") or "",
        "raw": pollution,
    }

    try:
        get_reading_store().append(reading)
    except Exception as e:
        return jsonify({"error": sanitize_error(e, "storage", "Storing reading failed")}), 500
    return jsonify(reading)


# ============================================================================
# Readings & history
# ============================================================================

@api_bp.route("/reading", methods=["POST"])
@require_token
def post_reading():
    """Store a reading posted by a device or the dashboard."""
    data = _json_body()
    reading = {
        "id": int(time.time() * 1000),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "userId": get_current_user_id(),
        "lat": optional_number(data, "lat"),
        "lng": optional_number(data, "lng"),
    }
    for name in MANUAL_READING_FIELDS:
        reading[name] = optional_number(data, name)
    reading["soil_moisture"] = parse_soil_moisture(data.get("soil_moisture"))

    try:
        get_reading_store().append(reading)
    except Exception as e:
        return jsonify({"ok": False, "error": sanitize_error(e, "storage", "reading post error")}), 500
    return jsonify({"ok": True, "reading": reading})


@api_bp.route("/history")
def history():
    """
    Paged readings, most recent first.

    Query: per (default 10, max 100), page (default 1). With a valid bearer
    token only the caller's readings are returned.
    """
    per = max(1, min(request.args.get("per", 10, type=int) or 10, MAX_HISTORY_PER_PAGE))
    page = max(1, request.args.get("page", 1, type=int) or 1)

    store = get_reading_store()
    user_id = get_optional_user_id()
    try:
        readings = store.for_user(user_id) if user_id else store.all()
    except Exception as e:
        return jsonify({"error": sanitize_error(e, "storage", "History failed")}), 500

    end = len(readings) - per * (page - 1)
    start = max(0, len(readings) - per * page)
    items = readings[start:end] if end > 0 else []
    return jsonify({"data": list(reversed(items))})


# ============================================================================
# AI plant recommendations
# ============================================================================

def _recommend():
    body = _json_body()
    try:
        stored = get_reading_store().latest_for_user(get_current_user_id())
        snapshot = build_recommendation_snapshot(body, stored)
        outcome = get_recommendation_client().request_recommendation(snapshot)
    except Exception as e:
        current_app.logger.error(f"AI error: {e}", exc_info=True)
        return jsonify({"error": "AI recommendation failed", "details": str(e)}), 500

    if outcome.ok:
        return jsonify({"success": True, "data": outcome.result})

    log_warning(
        "AI responded with error",
        kind=outcome.kind,
        detail=outcome.message,
        status=outcome.status,
        details=outcome.details if outcome.details is not None else outcome.raw,
    )
    return jsonify({
        "success": False,
        "aiError": outcome.kind,
        "message": outcome.message,
        "fallback": outcome.fallback,
    }), 200


@api_bp.route("/ai-plants", methods=["POST"])
@require_token
@ai_limit
def ai_plants():
    """
    Plant recommendations for the caller's environment.

    Body may include any of aqi, humidity, temp, category, city, components,
    main_pollutant, soil_moisture and a nested "latest" object with the same
    fields; anything missing comes from the caller's most recent reading.

    Rate limit: RATELIMIT_AI (6 per minute per address), shared with /recommend.

    Returns:
        200: {"success": true, "data": {...}}
        200: {"success": false, "aiError": "...", "message": "...", "fallback": {...}}
        401: missing/invalid token
        429: rate limit exceeded
        500: {"error": "AI recommendation failed", "details": "..."}
    """
    return _recommend()


@api_bp.route("/recommend", methods=["POST"])
@require_token
@ai_limit
def recommend():
    """Alias of /ai-plants."""
    return _recommend()


@api_bp.route("/<path:_unknown>", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
def api_not_found(_unknown: str):
    return jsonify({"error": "Not found"}), 404
