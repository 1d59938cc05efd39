"""
Input validation and normalization.

Trims and bounds account fields, validates emails, parses coordinates and
sensor values from query strings and JSON bodies.
"""

from __future__ import annotations
import math
import re
from typing import Any, Dict, Optional, Tuple

from email_validator import EmailNotValidError, validate_email

from ..services.pollution import to_number

MAX_NAME_LEN = 80
MIN_PASSWORD_LEN = 6
MAX_PASSWORD_LEN = 256

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def _soft_sanitize(text: Any, max_len: int) -> str:
    """Strip, bound length, drop control characters, collapse spaces."""
    t = str(text or "").strip()
    if not t:
        return ""
    t = t[:max_len]
    t = _CONTROL_CHARS.sub("", t)
    t = re.sub(r"\s{2,}", " ", t)
    return t


def normalize_email(raw: Any) -> Optional[str]:
    """Lower-cased normalized email, or None when it is not a valid address."""
    email = str(raw or "").strip().lower()
    if not email:
        return None
    try:
        valid = validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return None
    return valid.normalized.lower()


def validate_signup(data: Dict[str, Any]) -> Tuple[Dict[str, str], str | None]:
    """
    Validates a signup body and returns (payload, error_message).
    On success payload has name, email (normalized) and password.
    """
    name = _soft_sanitize(data.get("name"), MAX_NAME_LEN)
    raw_email = data.get("email")
    password = data.get("password")

    if not name or not raw_email or not password:
        return {}, "name,email,password required"
    if not isinstance(password, str) or len(password) > MAX_PASSWORD_LEN:
        return {}, "Invalid password"
    if len(password) < MIN_PASSWORD_LEN:
        return {}, f"Password must be at least {MIN_PASSWORD_LEN} characters"

    email = normalize_email(raw_email)
    if not email:
        return {}, "Invalid email address"

    return {"name": name, "email": email, "password": password}, None


def parse_coordinates(lat: Any, lon: Any) -> Optional[Tuple[float, float]]:
    """(lat, lon) when both parse and fall inside valid ranges, else None."""
    la = to_number(lat)
    lo = to_number(lon)
    if la is None or lo is None:
        return None
    if not (-90 <= la <= 90 and -180 <= lo <= 180):
        return None
    return la, lo


def parse_soil_moisture(raw: Any) -> Optional[float]:
    """
    Soil moisture from a query string or JSON body.

    Missing and unparseable values both give None; an explicit 0 stays 0.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    n = to_number(raw)
    if n is None or math.isinf(n):
        return None
    return int(n) if n.is_integer() else n


def optional_number(data: Dict[str, Any], key: str) -> Optional[float]:
    n = to_number(data.get(key))
    if n is None or math.isinf(n):
        return None
    return int(n) if n.is_integer() else n
