"""
OpenWeather helpers (current weather + air pollution by coordinates).

Functions:
- get_current_weather(lat, lon): raw current-weather payload (metric units).
- get_air_pollution(lat, lon): raw air-pollution payload (list[0].main.aqi 1-5,
  list[0].components concentrations).
- summarize_weather(data): the compact dict served by /api/weather.
- main_pollutant(components): component with the highest concentration.

Notes:
- Current weather is cached for a few minutes per ~1 km grid cell; the
  dashboard polls, and OpenWeather's free tier allows 60 requests per minute.
- Air pollution is never cached because every call produces a stored reading.
- Unlike the UI-facing helpers, these raise WeatherError so routes can answer
  with a 500 instead of silently empty data.
"""

from __future__ import annotations
import threading
from typing import Any, Dict, Mapping, Optional

import requests
from cachetools import TTLCache
from flask import current_app

OPENWEATHER_BASE = "https://api.openweathermap.org/data/2.5"
OPENWEATHER_TIMEOUT = 6
OPENWEATHER_CACHE_TTL = 600         # 10 minutes - weather doesn't change fast
OPENWEATHER_CACHE_MAX_ENTRIES = 256

_weather_cache: TTLCache = TTLCache(maxsize=OPENWEATHER_CACHE_MAX_ENTRIES, ttl=OPENWEATHER_CACHE_TTL)
_cache_lock = threading.Lock()


class WeatherError(RuntimeError):
    """OpenWeather could not be reached or returned an error."""


def clear_weather_cache() -> None:
    """Clear the current-weather cache. Useful for testing."""
    with _cache_lock:
        _weather_cache.clear()


def get_api_key() -> Optional[str]:
    """OpenWeather key from the app config (BaseConfig reads the environment)."""
    return current_app.config.get("OPENWEATHER_API_KEY") or None


def _get(path: str, lat: float, lon: float, key: str, **extra: Any) -> Dict[str, Any]:
    params = {"lat": lat, "lon": lon, "appid": key, **extra}
    try:
        r = requests.get(f"{OPENWEATHER_BASE}/{path}", params=params, timeout=OPENWEATHER_TIMEOUT)
        r.raise_for_status()
        return r.json()
    except (requests.RequestException, ValueError) as e:
        raise WeatherError(f"OpenWeather {path} failed: {e}") from e


def get_current_weather(lat: float, lon: float, key: str) -> Dict[str, Any]:
    cache_key = (round(lat, 2), round(lon, 2))
    with _cache_lock:
        if cache_key in _weather_cache:
            return _weather_cache[cache_key]

    data = _get("weather", lat, lon, key, units="metric")

    with _cache_lock:
        _weather_cache[cache_key] = data
    return data


def get_air_pollution(lat: float, lon: float, key: str) -> Dict[str, Any]:
    return _get("air_pollution", lat, lon, key)


def summarize_weather(data: Mapping[str, Any]) -> Dict[str, Any]:
    main = data.get("main") or {}
    return {
        "temperature": main.get("temp"),
        "humidity": main.get("humidity"),
        "condition": weather_condition(data),
        "city": data.get("name") or "",
    }


def main_pollutant(components: Optional[Mapping[str, Any]]) -> str:
    """Name of the highest-concentration component ("" if none)."""
    numeric = {
        k: v for k, v in (components or {}).items()
        if isinstance(v, (int, float)) and not isinstance(v, bool)
    }
    if not numeric:
        return ""
    return max(numeric, key=numeric.get)


def first_pollution_entry(data: Mapping[str, Any]) -> Dict[str, Any]:
    entries = data.get("list") or []
    return entries[0] if entries and isinstance(entries[0], dict) else {}


def weather_condition(data: Mapping[str, Any]) -> str:
    """Short condition ("Clouds"), falling back to the description."""
    first = (data.get("weather") or [{}])[0] or {}
    return first.get("main") or first.get("description") or ""
