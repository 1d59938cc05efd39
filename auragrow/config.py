"""
Centralized configuration for all environments.

Select a config by setting:
  APP_CONFIG=auragrow.config.DevConfig      # local dev
  APP_CONFIG=auragrow.config.ProdConfig     # production (default if unset)
  APP_CONFIG=auragrow.config.TestConfig     # pytest

Notes:
- SECRET_KEY is read from FLASK_SECRET_KEY and also signs bearer tokens
- Rate limiting uses Flask-Limiter v3 keys (RATELIMIT_*).
- ProviderSettings is built once in create_app() and handed to the
  recommendation client, so the client never reads the environment itself.
"""

from __future__ import annotations
import os
import secrets
from dataclasses import dataclass
from typing import Any, Mapping

_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class BaseConfig:
    # Secrets & basics; a random key means tokens do not survive a restart
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    # Bearer tokens (7 days)
    TOKEN_MAX_AGE_SECONDS = int(os.getenv("TOKEN_MAX_AGE_SECONDS", str(7 * 24 * 60 * 60)))

    # Third-party keys
    OPENWEATHER_API_KEY = os.getenv("OPENWEATHER_API_KEY", "")
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")

    # Generative AI provider
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-flash-latest")
    GEMINI_API_BASE = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
    AI_TIMEOUT_SECONDS = 20
    AI_TEMPERATURE = 0.5
    AI_MAX_OUTPUT_TOKENS = 600

    # Flat-file storage
    DATA_DIR = os.getenv("DATA_DIR", os.path.join(_REPO_ROOT, "data"))
    READINGS_MAX_ENTRIES = int(os.getenv("READINGS_MAX_ENTRIES", "2000"))

    # Flask-Limiter v3
    RATELIMIT_ENABLED = os.getenv("RATELIMIT_ENABLED", "true").lower() == "true"
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_STRATEGY = "moving-window"
    RATELIMIT_DEFAULT = os.getenv("RATELIMIT_DEFAULT", "60 per minute; 2000 per day")
    RATELIMIT_AI = os.getenv("RATELIMIT_AI", "6 per minute")
    SIGNUP_RATE_LIMIT = "5 per minute; 20 per hour"

    # CORS for the static dashboard (comma-separated, "*" for any origin)
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Session cookies are unused by the API but keep the secure defaults
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Misc
    PREFERRED_URL_SCHEME = os.getenv("PREFERRED_URL_SCHEME", "https")
    SEND_FILE_MAX_AGE_DEFAULT = int(os.getenv("SEND_FILE_MAX_AGE_DEFAULT", "3600"))


class ProdConfig(BaseConfig):
    """Production settings (selected by default if APP_CONFIG is unset)."""
    pass


class DevConfig(BaseConfig):
    """Developer-friendly settings."""
    DEBUG = True
    SEND_FILE_MAX_AGE_DEFAULT = 0
    PREFERRED_URL_SCHEME = "http"
    SESSION_COOKIE_SECURE = False
    SIGNUP_RATE_LIMIT = "100 per minute; 500 per hour"


class TestConfig(BaseConfig):
    """CI/pytest settings."""
    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key"
    # Tests never talk to real providers
    GEMINI_API_KEY = ""
    OPENWEATHER_API_KEY = ""
    # Tests that exercise the limiter turn it back on explicitly
    RATELIMIT_ENABLED = False
    SESSION_COOKIE_SECURE = False
    SEND_FILE_MAX_AGE_DEFAULT = 0


@dataclass(frozen=True)
class ProviderSettings:
    """Immutable settings for the generative-AI provider."""

    api_key: str = ""
    model: str = "gemini-flash-latest"
    api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: float = 20
    temperature: float = 0.5
    max_output_tokens: int = 600

    @property
    def endpoint(self) -> str:
        return f"{self.api_base.rstrip('/')}/models/{self.model}:generateContent"

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ProviderSettings":
        return cls(
            api_key=config.get("GEMINI_API_KEY") or "",
            model=config.get("GEMINI_MODEL") or cls.model,
            api_base=config.get("GEMINI_API_BASE") or cls.api_base,
            timeout=config.get("AI_TIMEOUT_SECONDS", cls.timeout),
            temperature=config.get("AI_TEMPERATURE", cls.temperature),
            max_output_tokens=config.get("AI_MAX_OUTPUT_TOKENS", cls.max_output_tokens),
        )
