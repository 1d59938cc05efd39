"""
Flat-file JSON persistence for users and environmental readings.

Each store owns one JSON file holding a list of records. Reads return the
whole list; writes replace the whole file through a temporary file and
os.replace(), so a concurrent reader never sees a half-written document.
A per-store lock serializes read-modify-write cycles inside one process.

Stores are constructed once in create_app() and looked up through
get_reading_store() / get_user_store(), which keeps tests free to build
fresh instances against a temporary directory.
"""

from __future__ import annotations
import json
import logging
import os
import tempfile
import threading
from typing import Any, Callable, Dict, List, Optional

from flask import current_app

logger = logging.getLogger(__name__)

USERS_FILENAME = "users.json"
READINGS_FILENAME = "readings.json"
DEFAULT_MAX_READINGS = 2000


class StorageError(RuntimeError):
    """Raised when a data file exists but cannot be read or parsed."""


class JsonFileStore:
    """A list of JSON records persisted in a single file."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _read_unlocked(self) -> List[Dict[str, Any]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                text = f.read()
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e

        if not text.strip():
            return []
        try:
            data = json.loads(text)
        except ValueError as e:
            raise StorageError(f"Corrupt JSON in {self.path}: {e}") from e
        if not isinstance(data, list):
            raise StorageError(f"Expected a JSON list in {self.path}")
        return data

    def _write_unlocked(self, records: List[Dict[str, Any]]) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def read_all(self) -> List[Dict[str, Any]]:
        with self._lock:
            return self._read_unlocked()

    def write_all(self, records: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._write_unlocked(records)

    def update(self, fn: Callable[[List[Dict[str, Any]]], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        """Apply fn to the current records and persist the result atomically."""
        with self._lock:
            records = fn(self._read_unlocked())
            self._write_unlocked(records)
            return records


def _same_user(record: Dict[str, Any], user_id: Any) -> bool:
    owner = record.get("userId")
    return owner is not None and str(owner) == str(user_id)


class ReadingStore:
    """Append-only readings, capped to the most recent max_entries."""

    def __init__(self, path: str, max_entries: int = DEFAULT_MAX_READINGS):
        self._file = JsonFileStore(path)
        self.max_entries = max_entries

    @property
    def path(self) -> str:
        return self._file.path

    def all(self) -> List[Dict[str, Any]]:
        return self._file.read_all()

    def append(self, reading: Dict[str, Any]) -> Dict[str, Any]:
        def _append(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            records.append(reading)
            # Oldest entries go first
            overflow = len(records) - self.max_entries
            return records[overflow:] if overflow > 0 else records

        self._file.update(_append)
        return reading

    def for_user(self, user_id: Any) -> List[Dict[str, Any]]:
        return [r for r in self.all() if _same_user(r, user_id)]

    def latest_for_user(self, user_id: Any) -> Optional[Dict[str, Any]]:
        """Most recently appended reading for user_id, or None."""
        if user_id is None:
            return None
        readings = self.for_user(user_id)
        return readings[-1] if readings else None

    def prune(self, keep: int) -> int:
        """Trim to the newest `keep` readings; returns how many were removed."""
        removed = 0

        def _prune(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            nonlocal removed
            removed = max(0, len(records) - keep)
            return records[removed:]

        self._file.update(_prune)
        return removed


class UserStore:
    """User accounts keyed by case-insensitive email."""

    def __init__(self, path: str):
        self._file = JsonFileStore(path)

    def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        wanted = (email or "").strip().lower()
        for user in self._file.read_all():
            if str(user.get("email", "")).lower() == wanted:
                return user
        return None

    def find_by_id(self, user_id: Any) -> Optional[Dict[str, Any]]:
        for user in self._file.read_all():
            if str(user.get("id")) == str(user_id):
                return user
        return None

    def create(self, user: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Store user unless the email is taken. Returns None on duplicates."""
        created = None

        def _create(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            nonlocal created
            email = str(user.get("email", "")).lower()
            if any(str(r.get("email", "")).lower() == email for r in records):
                return records
            records.append(user)
            created = user
            return records

        self._file.update(_create)
        return created


def init_stores(app) -> None:
    """Build the stores for app and register them in app.extensions."""
    data_dir = app.config.get("DATA_DIR")
    max_entries = app.config.get("READINGS_MAX_ENTRIES", DEFAULT_MAX_READINGS)
    app.extensions["reading_store"] = ReadingStore(
        os.path.join(data_dir, READINGS_FILENAME), max_entries=max_entries
    )
    app.extensions["user_store"] = UserStore(os.path.join(data_dir, USERS_FILENAME))
    logger.debug("Flat-file stores ready in %s", data_dir)


def get_reading_store() -> ReadingStore:
    return current_app.extensions["reading_store"]


def get_user_store() -> UserStore:
    return current_app.extensions["user_store"]
