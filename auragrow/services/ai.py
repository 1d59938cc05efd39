"""
Plant recommendation engine (AI-first with safe fallback).

Sends an environment snapshot to Gemini and turns the reply into a
RecommendationResult dict. The provider is asked for strict JSON but does not
always comply, so parsing happens in two stages: a strict json.loads, then a
salvage pass over the first {...} block in the text.

Failures never raise. Every failure is returned as a RecommendationFailure
carrying a copy of LOCAL_FALLBACK, so callers always have something to show.
"""

from __future__ import annotations
import copy
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

import requests
from flask import current_app

from ..config import ProviderSettings
from .pollution import to_number

logger = logging.getLogger(__name__)

# Failure kinds
INVALID_PAYLOAD = "invalid_payload"
NO_API_KEY = "no_api_key"
NO_CONTENT = "no_content"
PARSE_FAILED = "parse_failed"
BAD_REQUEST = "bad_request"
AUTH_ERROR = "auth_error"
REQUEST_FAILED = "request_failed"

FAILURE_KINDS = frozenset({
    INVALID_PAYLOAD, NO_API_KEY, NO_CONTENT, PARSE_FAILED,
    BAD_REQUEST, AUTH_ERROR, REQUEST_FAILED,
})

LOCAL_FALLBACK: Dict[str, Any] = {
    "total_plants": 1,
    "plants": [
        {
            "name": "Spider Plant",
            "type": "indoor",
            "why": "Tolerant and filters light pollutants",
            "how_many": 1,
            "placement": "indoor",
            "care": ["moderate light", "keep soil slightly moist"],
            "confidence": 0.6,
        }
    ],
    "notes": "Using local fallback due to AI unavailability.",
}

RESPONSE_SCHEMA = (
    '{ "total_plants": int, "plants": [ { "name", "type", "why", "how_many", '
    '"placement", "care?", "confidence" } ], "notes?" }'
)

# First "{" through last "}", across lines
_JSON_BLOCK = re.compile(r"(\{[\s\S]*\})", re.MULTILINE)


def fallback_result() -> Dict[str, Any]:
    """Fresh copy of the static fallback (callers may mutate it)."""
    return copy.deepcopy(LOCAL_FALLBACK)


@dataclass
class RecommendationSuccess:
    result: Any
    ok: bool = field(default=True, init=False)


@dataclass
class RecommendationFailure:
    kind: str
    message: str
    fallback: Dict[str, Any] = field(default_factory=fallback_result)
    status: Optional[int] = None
    raw: Optional[str] = None
    details: Any = None
    ok: bool = field(default=False, init=False)


ProviderOutcome = Union[RecommendationSuccess, RecommendationFailure]


def validate_snapshot(snapshot: Any) -> Optional[str]:
    """Return a reason the snapshot cannot be sent, or None if it is usable."""
    if not isinstance(snapshot, Mapping):
        return "payload missing or not an object"
    # A non-numeric aqi (true, "high") is as good as none
    if snapshot.get("pollution_value") is None and to_number(snapshot.get("aqi")) is None:
        return "missing pollution_value or aqi"
    return None


def build_prompt(snapshot: Mapping[str, Any]) -> str:
    return (
        f"ENVIRONMENT: {json.dumps(snapshot, default=str)}\n\n"
        f"Return ONLY valid JSON with: {RESPONSE_SCHEMA}. No extra text."
    )


def _text_of(candidate: Any) -> Optional[str]:
    if isinstance(candidate, str):
        return candidate
    if isinstance(candidate, Mapping):
        if isinstance(candidate.get("text"), str):
            return candidate["text"]
        parts = candidate.get("parts")
        if isinstance(parts, list):
            texts = [p["text"] for p in parts if isinstance(p, Mapping) and isinstance(p.get("text"), str)]
            if texts:
                return "".join(texts)
    return None


def extract_text(envelope: Any) -> Optional[str]:
    """
    Pull the reply text out of a provider envelope.

    Looks at the first candidate's "content" then "output", then a top-level
    "result". Content may be a string, {"text": ...} or {"parts": [{"text": ...}]}.
    """
    if not isinstance(envelope, Mapping):
        return None
    candidates = envelope.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], Mapping):
        first = candidates[0]
        for key in ("content", "output"):
            text = _text_of(first.get(key))
            if text and text.strip():
                return text
    text = _text_of(envelope.get("result"))
    if text and text.strip():
        return text
    return None


def parse_recommendation(text: str) -> tuple[bool, Any]:
    """
    Two-stage parse of provider text. Returns (ok, value).

    Examples:
        >>> parse_recommendation('{"total_plants": 0, "plants": []}')
        (True, {'total_plants': 0, 'plants': []})
        >>> parse_recommendation('Here you go: {"total_plants": 1, "plants": []}')
        (True, {'total_plants': 1, 'plants': []})
        >>> parse_recommendation('no json here')
        (False, None)
    """
    try:
        return True, json.loads(text)
    except ValueError:
        pass

    m = _JSON_BLOCK.search(str(text))
    if m:
        try:
            return True, json.loads(m.group(1))
        except ValueError:
            pass
    return False, None


def classify_status(status: Optional[int]) -> str:
    if status == 400:
        return BAD_REQUEST
    if status == 401:
        return AUTH_ERROR
    return REQUEST_FAILED


class RecommendationClient:
    """
    Gemini client for plant recommendations.

    Settings and the HTTP session are injected so tests can supply fake
    credentials and a fake transport.
    """

    def __init__(self, settings: ProviderSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()

    def _request_body(self, snapshot: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": build_prompt(snapshot)}]}],
            "generationConfig": {
                "temperature": self.settings.temperature,
                "maxOutputTokens": self.settings.max_output_tokens,
            },
        }

    def request_recommendation(self, snapshot: Any) -> ProviderOutcome:
        problem = validate_snapshot(snapshot)
        if problem:
            return RecommendationFailure(INVALID_PAYLOAD, problem)
        if not self.settings.api_key:
            return RecommendationFailure(NO_API_KEY, "GEMINI_API_KEY not configured")

        try:
            resp = self.session.post(
                self.settings.endpoint,
                json=self._request_body(snapshot),
                headers={"Content-Type": "application/json", "x-goog-api-key": self.settings.api_key},
                timeout=self.settings.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            response = getattr(e, "response", None)
            status = getattr(response, "status_code", None)
            details: Any = str(e)
            if response is not None:
                try:
                    details = response.json()
                except ValueError:
                    details = response.text or details
            kind = classify_status(status)
            logger.error("Gemini request failed: status=%s kind=%s", status, kind)
            return RecommendationFailure(kind, "AI request failed", status=status, details=details)

        try:
            envelope = resp.json()
        except ValueError:
            envelope = {}

        text = extract_text(envelope)
        if not text:
            return RecommendationFailure(
                NO_CONTENT, "No textual content in Gemini response", details=envelope
            )

        ok, result = parse_recommendation(text)
        if ok:
            return RecommendationSuccess(result)
        return RecommendationFailure(
            PARSE_FAILED,
            "Could not parse JSON from Gemini response",
            raw=text,
            details=envelope,
        )


def init_recommendation_client(app, session: Optional[requests.Session] = None) -> RecommendationClient:
    """Build the client from app config and register it in app.extensions."""
    client = RecommendationClient(ProviderSettings.from_config(app.config), session=session)
    app.extensions["recommendation_client"] = client
    return client


def get_recommendation_client() -> RecommendationClient:
    return current_app.extensions["recommendation_client"]
