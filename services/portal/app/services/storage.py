"""Client-side key/value storage.

Two scopes exist per client: durable ``local`` storage shared by all of its tabs, and
``session`` storage owned by a single tab and dropped when the tab goes away. Values are
strings; JSON helpers sit on top.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from services.portal.app.db.models import StorageEntry
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Durable local storage.
CART_KEY = "vhelpcc_food_cart"
USER_KEY = "user"
IS_AUTHENTICATED_KEY = "isAuthenticated"
AUTH_SESSION_KEY = "portal_auth_session"

# Tab-scoped session storage.
PENDING_REPAIR_KEY = "pendingFormData"
PENDING_LOST_AND_FOUND_KEY = "pendingLostAndFoundData"
PENDING_CART_ACTION_KEY = "pendingCartAction"
PENDING_CART_ACCESS_KEY = "pendingCartAccess"
PENDING_ACTION_KEY = "pendingAction"
RETURN_URL_KEY = "returnUrl"
SERVICE_CONTEXT_KEY = "serviceContext"

LOCAL_SCOPE = "local"
SESSION_SCOPE = "session"


@dataclass(frozen=True, slots=True)
class StorageChange:
    key: str | None
    old_value: str | None
    new_value: str | None


StorageListener = Callable[[StorageChange], None]


class Storage(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def clear(self) -> None: ...

    def subscribe(self, listener: StorageListener) -> Callable[[], None]: ...


class _Listeners:
    def __init__(self) -> None:
        self._listeners: list[StorageListener] = []

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def notify(self, change: StorageChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Storage listener failed for key=%s", change.key)


class MemoryStorage:
    """In-process storage. Share one instance between engines to model several tabs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._listeners = _Listeners()

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        old = self._data.get(key)
        self._data[key] = value
        self._listeners.notify(StorageChange(key, old, value))

    def remove(self, key: str) -> None:
        if key not in self._data:
            return
        old = self._data.pop(key)
        self._listeners.notify(StorageChange(key, old, None))

    def clear(self) -> None:
        self._data.clear()
        self._listeners.notify(StorageChange(None, None, None))

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    def keys(self) -> list[str]:
        return list(self._data)


class SqlStorage:
    """Storage persisted in the ``storage_entries`` table.

    Every write commits immediately, matching browser storage where a write is durable as
    soon as the call returns. Listeners only see writes made through this instance.
    """

    def __init__(self, db: Session, owner_id: str, scope: str) -> None:
        if scope not in (LOCAL_SCOPE, SESSION_SCOPE):
            raise ValueError(f"Unknown storage scope {scope!r}")
        self._db = db
        self.owner_id = owner_id
        self.scope = scope
        self._listeners = _Listeners()

    def _entry(self, key: str) -> StorageEntry | None:
        return self._db.scalar(
            select(StorageEntry).where(
                StorageEntry.owner_id == self.owner_id,
                StorageEntry.scope == self.scope,
                StorageEntry.key == key,
            )
        )

    def get(self, key: str) -> str | None:
        entry = self._entry(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: str) -> None:
        entry = self._entry(key)
        old = entry.value if entry is not None else None
        if entry is None:
            self._db.add(
                StorageEntry(owner_id=self.owner_id, scope=self.scope, key=key, value=value)
            )
        else:
            entry.value = value
            entry.updated_at = datetime.utcnow()
        self._db.commit()
        self._listeners.notify(StorageChange(key, old, value))

    def remove(self, key: str) -> None:
        entry = self._entry(key)
        if entry is None:
            return
        old = entry.value
        self._db.delete(entry)
        self._db.commit()
        self._listeners.notify(StorageChange(key, old, None))

    def clear(self) -> None:
        self._db.execute(
            delete(StorageEntry).where(
                StorageEntry.owner_id == self.owner_id,
                StorageEntry.scope == self.scope,
            )
        )
        self._db.commit()
        self._listeners.notify(StorageChange(None, None, None))

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        return self._listeners.subscribe(listener)


def read_json(storage: Storage, key: str) -> Any | None:
    """Decode a JSON value. Malformed entries are deleted and read as absent."""

    raw = storage.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Discarding corrupted storage entry key=%s", key)
        storage.remove(key)
        return None


def write_json(storage: Storage, key: str, value: Any) -> None:
    storage.set(key, json.dumps(value, separators=(",", ":")))
