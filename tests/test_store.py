"""
Flat-file stores: append order, per-user lookup, the readings cap and
corrupt-file handling.
"""

import json

import pytest

from auragrow.services.store import JsonFileStore, ReadingStore, StorageError, UserStore


def test_missing_and_empty_files_read_as_empty(tmp_path):
    store = JsonFileStore(str(tmp_path / "nothing.json"))
    assert store.read_all() == []

    empty = tmp_path / "empty.json"
    empty.write_text("")
    assert JsonFileStore(str(empty)).read_all() == []


def test_corrupt_file_raises(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(StorageError):
        JsonFileStore(str(path)).read_all()


def test_write_creates_directory_and_valid_json(tmp_path):
    path = tmp_path / "nested" / "records.json"
    JsonFileStore(str(path)).write_all([{"a": 1}])
    assert json.loads(path.read_text()) == [{"a": 1}]
    # No temp files left behind
    assert [p.name for p in path.parent.iterdir()] == ["records.json"]


def test_latest_for_user_uses_append_order(tmp_path):
    store = ReadingStore(str(tmp_path / "readings.json"))
    store.append({"userId": "u1", "aqi": 1})
    store.append({"userId": "u2", "aqi": 2})
    store.append({"userId": "u1", "aqi": 3})
    store.append({"userId": None, "aqi": 5})

    assert store.latest_for_user("u1")["aqi"] == 3
    assert store.latest_for_user("u3") is None
    assert store.latest_for_user(None) is None
    assert [r["aqi"] for r in store.for_user("u1")] == [1, 3]


def test_user_ids_compare_as_strings(tmp_path):
    store = ReadingStore(str(tmp_path / "readings.json"))
    store.append({"userId": 1700000000000, "aqi": 2})
    assert store.latest_for_user("1700000000000")["aqi"] == 2


def test_readings_are_capped_oldest_first(tmp_path):
    store = ReadingStore(str(tmp_path / "readings.json"), max_entries=3)
    for i in range(5):
        store.append({"n": i})
    assert [r["n"] for r in store.all()] == [2, 3, 4]


def test_prune(tmp_path):
    store = ReadingStore(str(tmp_path / "readings.json"))
    for i in range(4):
        store.append({"n": i})
    assert store.prune(1) == 3
    assert store.all() == [{"n": 3}]
    assert store.prune(10) == 0


def test_user_store_rejects_duplicate_email(tmp_path):
    users = UserStore(str(tmp_path / "users.json"))
    assert users.create({"id": "a", "email": "ada@example.com", "name": "Ada"})
    assert users.create({"id": "b", "email": "ADA@example.com", "name": "Other"}) is None
    assert users.find_by_email("Ada@Example.com")["id"] == "a"
    assert users.find_by_id("a")["name"] == "Ada"
    assert users.find_by_id("zzz") is None
