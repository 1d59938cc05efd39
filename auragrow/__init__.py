"""
Application factory and global configuration.

Creates the Flask app, applies security headers (CSP), configures rate
limiting and CORS, builds the process-wide components (flat-file stores,
recommendation client) once, and registers blueprints. This file keeps
startup/config concerns together and avoids domain logic here.
"""

from __future__ import annotations
import os
from typing import Any, Mapping, Optional

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request

from .extensions import cors, limiter
from .routes.api import api_bp
from .routes.web import web_bp
from .services.ai import init_recommendation_client
from .services.store import init_stores


def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    # override=False so production env vars are not overwritten by a stale .env file
    load_dotenv(override=False)

    app = Flask(
        __name__,
        static_folder="static",
    )

    # Allow APP_CONFIG to override (e.g., auragrow.config.DevConfig)
    cfg_path = os.getenv("APP_CONFIG", "auragrow.config.ProdConfig")
    try:
        app.config.from_object(cfg_path)
    except (ImportError, AttributeError) as e:
        app.logger.warning(f"Could not load config object {cfg_path}: {e}")
    if overrides:
        app.config.update(overrides)

    # init_app reads RATELIMIT_ENABLED from this app's config
    limiter.init_app(app)

    origins = [o.strip() for o in app.config.get("CORS_ORIGINS", "*").split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins or "*"}})

    init_stores(app)
    init_recommendation_client(app)

    # Never log the key itself
    app.logger.info(
        "Starting AuraGrow backend. AI_PROVIDER=gemini GEMINI_KEY=%s",
        "yes" if app.config.get("GEMINI_API_KEY") else "no",
    )

    csp = (
        "default-src 'self'; "
        "script-src 'self'; "
        "style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data: https://openweathermap.org; "
        "connect-src 'self'; "
        "object-src 'none'; "
        "base-uri 'self'; "
        "frame-ancestors 'none'; "
        "form-action 'self'"
    )

    @app.after_request
    def apply_security_headers(resp: Response) -> Response:
        resp.headers["Content-Security-Policy"] = csp
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        resp.headers["X-Frame-Options"] = "DENY"
        if app.config.get("SESSION_COOKIE_SECURE", False):
            resp.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        resp.headers["Permissions-Policy"] = (
            "accelerometer=(), camera=(), geolocation=(self), gyroscope=(), "
            "magnetometer=(), microphone=(), payment=(), usb=()"
        )
        return resp

    @app.errorhandler(429)
    def too_many_requests(e):
        if request.path.startswith("/api/ai-plants") or request.path.startswith("/api/recommend"):
            message = "Too many AI requests, slow down"
        else:
            message = "Too many requests, slow down"
        return jsonify({"error": message}), 429

    # Blueprints
    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(web_bp)

    # Register CLI commands
    from .cli import create_user_command, prune_readings_command
    app.cli.add_command(create_user_command)
    app.cli.add_command(prune_readings_command)

    return app
