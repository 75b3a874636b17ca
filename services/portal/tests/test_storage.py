from __future__ import annotations

from pathlib import Path

import pytest
from services.portal.app.services.storage import (
    LOCAL_SCOPE,
    SESSION_SCOPE,
    MemoryStorage,
    SqlStorage,
    StorageChange,
    read_json,
    write_json,
)


def test_memory_storage_notifies_listeners() -> None:
    storage = MemoryStorage()
    changes: list[StorageChange] = []
    unsubscribe = storage.subscribe(changes.append)

    storage.set("a", "1")
    storage.set("a", "2")
    storage.remove("a")
    storage.remove("a")
    storage.clear()

    assert changes == [
        StorageChange("a", None, "1"),
        StorageChange("a", "1", "2"),
        StorageChange("a", "2", None),
        StorageChange(None, None, None),
    ]

    unsubscribe()
    storage.set("b", "1")
    assert len(changes) == 4


def test_failing_listener_does_not_block_others() -> None:
    storage = MemoryStorage()
    seen: list[str | None] = []

    def _boom(change: StorageChange) -> None:
        raise RuntimeError("listener bug")

    storage.subscribe(_boom)
    storage.subscribe(lambda change: seen.append(change.key))

    storage.set("k", "v")

    assert seen == ["k"]
    assert storage.get("k") == "v"


def test_read_json_deletes_malformed_entries() -> None:
    storage = MemoryStorage({"good": '{"a": 1}', "bad": "{oops"})

    assert read_json(storage, "good") == {"a": 1}
    assert read_json(storage, "bad") is None
    assert storage.get("bad") is None
    assert read_json(storage, "missing") is None


def test_write_json_round_trips_through_read_json() -> None:
    storage = MemoryStorage()
    write_json(storage, "k", {"items": [1, 2]})
    assert read_json(storage, "k") == {"items": [1, 2]}


@pytest.fixture()
def db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'storage.db'}")
    monkeypatch.setenv("PORTAL_DB_AUTO_CREATE", "true")

    from services.portal.app.db.database import db_session
    from services.portal.app.db.init_db import init_db

    init_db()
    session = db_session()
    try:
        yield session
    finally:
        session.close()


def test_sql_storage_persists_and_isolates_scopes(db) -> None:
    local = SqlStorage(db, "browser-1", LOCAL_SCOPE)
    session = SqlStorage(db, "browser-1:tab-a", SESSION_SCOPE)
    other = SqlStorage(db, "browser-2", LOCAL_SCOPE)

    local.set("cart", "x")
    local.set("cart", "y")
    session.set("returnUrl", "/food")

    assert local.get("cart") == "y"
    assert other.get("cart") is None
    assert session.get("cart") is None

    session.clear()
    assert session.get("returnUrl") is None
    assert local.get("cart") == "y"

    local.remove("cart")
    assert local.get("cart") is None


def test_sql_storage_is_shared_between_instances(db) -> None:
    tab_a = SqlStorage(db, "browser-1", LOCAL_SCOPE)
    tab_b = SqlStorage(db, "browser-1", LOCAL_SCOPE)

    tab_a.set("user", "{}")
    assert tab_b.get("user") == "{}"


def test_sql_storage_rejects_unknown_scope(db) -> None:
    with pytest.raises(ValueError, match="scope"):
        SqlStorage(db, "browser-1", "cookie")
