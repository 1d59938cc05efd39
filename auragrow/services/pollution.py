"""
Pollution severity score (0-100).

OpenWeather reports air quality as a 1-5 category; devices and some
upstream payloads only carry a PM2.5 concentration. Both are mapped onto one
severity score used for stored readings and the AI prompt.
"""

from __future__ import annotations
import math
from typing import Any, Mapping, Optional, Union

Number = Union[int, float]

# Keys OpenWeather and posted device readings use for PM2.5
PM25_KEYS = ("pm2_5", "pm25")

# (upper bound in ug/m3, score)
_PM25_BUCKETS = ((12, 10), (35, 40), (55, 70))
_PM25_ABOVE = 90


def to_number(value: Any) -> Optional[float]:
    """Parse ints, floats and numeric strings; None for anything else."""
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(n):
        return None
    return n


def _tidy(score: float) -> Number:
    return int(score) if float(score).is_integer() else score


def score_from_aqi(aqi: Any) -> Optional[Number]:
    n = to_number(aqi)
    if n is None:
        return None
    return _tidy(min(100.0, max(0.0, (n - 1) * 25 + 20)))


def score_from_pm25(pm25: Any) -> Optional[int]:
    n = to_number(pm25)
    if n is None:
        return None
    for bound, score in _PM25_BUCKETS:
        if n <= bound:
            return score
    return _PM25_ABOVE


def pm25_from_components(components: Optional[Mapping[str, Any]]) -> Any:
    if not isinstance(components, Mapping):
        return None
    for key in PM25_KEYS:
        if components.get(key) is not None:
            return components[key]
    return None


def estimate_pollution_value(aqi: Any = None, components: Optional[Mapping[str, Any]] = None) -> Optional[Number]:
    """
    Severity score for a snapshot.

    Uses the AQI category when it is numeric, otherwise PM2.5 from the
    components mapping, otherwise None.

    Examples:
        >>> estimate_pollution_value(aqi=1)
        20
        >>> estimate_pollution_value(aqi=5)
        100
        >>> estimate_pollution_value(components={"pm2_5": 40})
        70
    """
    score = score_from_aqi(aqi)
    if score is not None:
        return score
    return score_from_pm25(pm25_from_components(components))
