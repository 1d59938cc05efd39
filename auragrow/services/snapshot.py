"""
Environment snapshot assembly.

A recommendation request may carry readings directly, inside a nested
"latest" object (what the dashboard last displayed), or nothing at all, in
which case the caller's most recent stored reading fills the gaps. Each field
is resolved on its own, so a request can override a single value and inherit
the rest.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .pollution import estimate_pollution_value

Path = Tuple[str, ...]

# field -> (paths in the request body, paths in body["latest"], paths in the stored reading)
# Earlier paths win within a source; sources are tried in order.
FIELD_SOURCES: Dict[str, Tuple[Tuple[Path, ...], Tuple[Path, ...], Tuple[Path, ...]]] = {
    "aqi": ((("aqi",), ("AQI",)), (("aqi",),), (("aqi",),)),
    "humidity": ((("humidity",),), (("humidity",),), (("humidity",),)),
    "temp": ((("temp",),), (("temp",),), (("temp",),)),
    "category": ((("category",),), (("category",),), (("category",),)),
    "city": ((("city",),), (("city",),), (("city",),)),
    "components": ((("components",),), (("components",),), (("components",),)),
    "main_pollutant": ((("main_pollutant",),), (("main_pollutant",),), (("main_pollutant",),)),
    "soil_moisture": (
        (("soil_moisture",), ("soil",)),
        (("soil_moisture",),),
        (("soil_moisture",),),
    ),
    "coords": ((("coords",),), (("coords",), ("raw", "coord")), (("raw", "coord"),)),
}

SNAPSHOT_FIELDS = tuple(FIELD_SOURCES) + ("pollution_value",)


def _dig(source: Optional[Mapping[str, Any]], path: Path) -> Any:
    node: Any = source
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def resolve_field(sources: Iterable[Tuple[Optional[Mapping[str, Any]], Iterable[Path]]]) -> Any:
    """First non-None value found walking (source, paths) pairs in order."""
    for source, paths in sources:
        if not isinstance(source, Mapping):
            continue
        for path in paths:
            value = _dig(source, path)
            if value is not None:
                return value
    return None


def build_snapshot(
    body: Optional[Mapping[str, Any]],
    stored: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Merge request body, body["latest"] and the stored reading into a snapshot.

    pollution_value is left as None; see enrich_snapshot().
    """
    body = body if isinstance(body, Mapping) else {}
    latest = body.get("latest")
    snapshot: Dict[str, Any] = {}
    for field, (body_paths, latest_paths, stored_paths) in FIELD_SOURCES.items():
        snapshot[field] = resolve_field((
            (body, body_paths),
            (latest, latest_paths),
            (stored, stored_paths),
        ))
    snapshot["pollution_value"] = None
    return snapshot


def enrich_snapshot(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in pollution_value from the snapshot's AQI or PM2.5."""
    snapshot["pollution_value"] = estimate_pollution_value(
        aqi=snapshot.get("aqi"),
        components=snapshot.get("components"),
    )
    return snapshot


def build_recommendation_snapshot(
    body: Optional[Mapping[str, Any]],
    stored: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    return enrich_snapshot(build_snapshot(body, stored))
