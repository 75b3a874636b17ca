from __future__ import annotations

import hashlib
import hmac
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from packages.shared.schemas.events import ChangeEventV1, ChangeTypeV1

logger = logging.getLogger(__name__)

Row = dict[str, Any]
ChangeCallback = Callable[[ChangeEventV1], None]


class RemoteBackendError(Exception):
    """Base class for remote backend errors."""


class RemoteAuthError(RemoteBackendError):
    """Bad credentials, duplicate account or an invalid session token."""


class RemoteNotFoundError(RemoteBackendError):
    def __init__(self, table: str, filters: Row) -> None:
        super().__init__(f"No row in {table} matching {filters}")
        self.table = table
        self.filters = filters


class RemoteUnavailableError(RemoteBackendError):
    """The backend could not be reached."""


@dataclass(frozen=True, slots=True)
class AuthSession:
    access_token: str
    user_id: str
    email: str


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class _Subscription:
    table: str
    callback: ChangeCallback
    event: ChangeTypeV1 | None
    filters: Row = field(default_factory=dict)

    def matches(self, change: ChangeEventV1) -> bool:
        if change.table != self.table:
            return False
        if self.event is not None and change.type != self.event:
            return False
        row = change.old if change.type == ChangeTypeV1.DELETE else change.new
        return all(row.get(k) == v for k, v in self.filters.items())


class ChangeFeed:
    """Fan-out of committed row changes to table subscriptions.

    Events are delivered in commit order. They are neither reordered nor de-duplicated.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        event: ChangeTypeV1 | None = None,
        filters: Row | None = None,
    ) -> Callable[[], None]:
        sub = _Subscription(
            table=table, callback=callback, event=event, filters=dict(filters or {})
        )
        self._subscriptions.append(sub)

        def _unsubscribe() -> None:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

        return _unsubscribe

    def emit(
        self,
        table: str,
        change_type: ChangeTypeV1,
        *,
        new: Row | None = None,
        old: Row | None = None,
    ) -> None:
        change = ChangeEventV1(
            table=table,
            type=change_type,
            new=new or {},
            old=old or {},
            committed_at=utc_now_iso(),
        )
        for sub in list(self._subscriptions):
            if not sub.matches(change):
                continue
            try:
                sub.callback(change)
            except Exception:
                logger.exception("Change subscriber failed for table=%s", table)

    def __len__(self) -> int:
        return len(self._subscriptions)


class RemoteBackend(Protocol):
    """The hosted database/auth service, reduced to what the portal consumes."""

    name: str

    def insert(self, table: str, row: Row) -> Row: ...

    def insert_many(self, table: str, rows: list[Row]) -> list[Row]: ...

    def select(
        self,
        table: str,
        filters: Row | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]: ...

    def select_one(self, table: str, filters: Row) -> Row: ...

    def update(self, table: str, filters: Row, changes: Row) -> list[Row]: ...

    def delete(self, table: str, filters: Row) -> int: ...

    def sign_up(self, email: str, password: str, profile: Row) -> AuthSession: ...

    def sign_in(self, email: str, password: str) -> AuthSession: ...

    def get_session(self, access_token: str) -> AuthSession | None: ...

    def sign_out(self, access_token: str) -> None: ...

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        event: ChangeTypeV1 | None = None,
        filters: Row | None = None,
    ) -> Callable[[], None]: ...


def hash_password(password: str, *, salt: bytes | None = None) -> str:
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, 100_000)
    return f"{salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    salt_hex, _, _digest = stored.partition("$")
    try:
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    return hmac.compare_digest(hash_password(password, salt=salt), stored)
