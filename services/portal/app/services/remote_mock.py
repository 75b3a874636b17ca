from __future__ import annotations

from collections.abc import Callable
from uuid import uuid4

from packages.shared.schemas.events import ChangeTypeV1
from services.portal.app.services.remote_base import (
    AuthSession,
    ChangeCallback,
    ChangeFeed,
    RemoteAuthError,
    RemoteNotFoundError,
    Row,
    hash_password,
    utc_now_iso,
    verify_password,
)


def _matches(row: Row, filters: Row | None) -> bool:
    return all(row.get(k) == v for k, v in (filters or {}).items())


class MockRemoteBackend:
    """In-memory backend for tests and local dev.

    ``fail_next`` arms a one-shot failure for an operation on a table, which is how tests
    simulate a backend rejection or an outage.
    """

    name = "MOCK"

    def __init__(self) -> None:
        self._tables: dict[str, list[Row]] = {}
        self._credentials: dict[str, tuple[str, str]] = {}
        self._sessions: dict[str, AuthSession] = {}
        self._failures: dict[tuple[str, str], Exception] = {}
        self._feed = ChangeFeed()

    def fail_next(self, operation: str, table: str, exc: Exception) -> None:
        self._failures[(operation, table)] = exc

    def _maybe_fail(self, operation: str, table: str) -> None:
        exc = self._failures.pop((operation, table), None)
        if exc is not None:
            raise exc

    def _rows(self, table: str) -> list[Row]:
        return self._tables.setdefault(table, [])

    def insert(self, table: str, row: Row) -> Row:
        return self.insert_many(table, [row])[0]

    def insert_many(self, table: str, rows: list[Row]) -> list[Row]:
        self._maybe_fail("insert", table)

        now = utc_now_iso()
        stored: list[Row] = []
        for row in rows:
            record = {"id": uuid4().hex, "created_at": now, "updated_at": now, **row}
            self._rows(table).append(record)
            stored.append(dict(record))

        for record in stored:
            self._feed.emit(table, ChangeTypeV1.INSERT, new=record)
        return stored

    def select(
        self,
        table: str,
        filters: Row | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        self._maybe_fail("select", table)

        rows = [dict(r) for r in self._rows(table) if _matches(r, filters)]
        if order_by is not None:
            rows.sort(
                key=lambda r: (r.get(order_by) is None, r.get(order_by)),
                reverse=descending,
            )
        if limit is not None:
            rows = rows[:limit]
        return rows

    def select_one(self, table: str, filters: Row) -> Row:
        rows = self.select(table, filters, limit=1)
        if not rows:
            raise RemoteNotFoundError(table, filters)
        return rows[0]

    def update(self, table: str, filters: Row, changes: Row) -> list[Row]:
        self._maybe_fail("update", table)

        updated: list[tuple[Row, Row]] = []
        for row in self._rows(table):
            if not _matches(row, filters):
                continue
            old = dict(row)
            row.update(changes)
            if "updated_at" not in changes:
                row["updated_at"] = utc_now_iso()
            updated.append((old, dict(row)))

        for old, new in updated:
            self._feed.emit(table, ChangeTypeV1.UPDATE, new=new, old=old)
        return [new for _old, new in updated]

    def delete(self, table: str, filters: Row) -> int:
        self._maybe_fail("delete", table)

        rows = self._rows(table)
        removed = [r for r in rows if _matches(r, filters)]
        self._tables[table] = [r for r in rows if not _matches(r, filters)]

        for row in removed:
            self._feed.emit(table, ChangeTypeV1.DELETE, old=dict(row))
        return len(removed)

    def sign_up(self, email: str, password: str, profile: Row) -> AuthSession:
        self._maybe_fail("sign_up", "auth")

        key = email.strip().lower()
        if key in self._credentials:
            raise RemoteAuthError("User already registered")

        user_id = uuid4().hex
        self._credentials[key] = (hash_password(password), user_id)
        # Mirrors the backend trigger that creates the profile row on sign-up.
        self.insert("users", {"id": user_id, "email": email, "role": "customer", **profile})
        return self._open_session(user_id, email)

    def sign_in(self, email: str, password: str) -> AuthSession:
        self._maybe_fail("sign_in", "auth")

        creds = self._credentials.get(email.strip().lower())
        if creds is None or not verify_password(password, creds[0]):
            raise RemoteAuthError("Invalid login credentials")
        return self._open_session(creds[1], email)

    def _open_session(self, user_id: str, email: str) -> AuthSession:
        session = AuthSession(access_token=uuid4().hex, user_id=user_id, email=email)
        self._sessions[session.access_token] = session
        return session

    def get_session(self, access_token: str) -> AuthSession | None:
        self._maybe_fail("get_session", "auth")
        return self._sessions.get(access_token)

    def sign_out(self, access_token: str) -> None:
        self._maybe_fail("sign_out", "auth")
        self._sessions.pop(access_token, None)

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        event: ChangeTypeV1 | None = None,
        filters: Row | None = None,
    ) -> Callable[[], None]:
        return self._feed.subscribe(table, callback, event=event, filters=filters)
