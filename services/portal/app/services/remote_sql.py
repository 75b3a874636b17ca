from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import uuid4

from packages.shared.schemas.events import ChangeTypeV1
from services.portal.app.db.database import session_scope
from services.portal.app.db.models import (
    AuthSessionRow,
    Base,
    FoodOrderItemRow,
    FoodOrderRow,
    LostAndFoundRow,
    MenuItemRow,
    RepairOrderRow,
    RestaurantRow,
    ServiceTypeRow,
    UserRow,
)
from services.portal.app.services.remote_base import (
    AuthSession,
    ChangeCallback,
    ChangeFeed,
    RemoteAuthError,
    RemoteBackendError,
    RemoteNotFoundError,
    RemoteUnavailableError,
    Row,
    hash_password,
    verify_password,
)
from sqlalchemy import DateTime, func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

TABLES: dict[str, type[Base]] = {
    "users": UserRow,
    "restaurants": RestaurantRow,
    "menu_items": MenuItemRow,
    "service_types": ServiceTypeRow,
    "repair_orders": RepairOrderRow,
    "food_orders": FoodOrderRow,
    "food_order_items": FoodOrderItemRow,
    "lost_and_found": LostAndFoundRow,
}

# Never exposed through row reads.
_HIDDEN_COLUMNS = {"password_hash"}


def _wrap(message: str, e: SQLAlchemyError) -> RemoteBackendError:
    # Connection-level failures (unreachable or unopenable database) are outages.
    if isinstance(e, OperationalError):
        return RemoteUnavailableError(message)
    return RemoteBackendError(message)


def _model(table: str) -> type[Base]:
    model = TABLES.get(table)
    if model is None:
        raise RemoteBackendError(f"Unknown table {table!r}")
    return model


def _column(model: type[Base], name: str) -> Any:
    if name not in model.__table__.columns:
        raise RemoteBackendError(f"Unknown column {model.__tablename__}.{name}")
    return getattr(model, name)


def _to_row(obj: Base) -> Row:
    out: Row = {}
    for col in obj.__table__.columns:
        if col.key in _HIDDEN_COLUMNS:
            continue
        value = getattr(obj, col.key)
        out[col.key] = value.isoformat() if isinstance(value, datetime) else value
    return out


def _coerce(model: type[Base], row: Row) -> Row:
    out: Row = {}
    for key, value in row.items():
        col = model.__table__.columns.get(key)
        if col is None:
            raise RemoteBackendError(f"Unknown column {model.__tablename__}.{key}")
        if isinstance(col.type, DateTime) and isinstance(value, str):
            value = datetime.fromisoformat(value)
        out[key] = value
    return out


class SqlRemoteBackend:
    """Backend over the portal's own SQLAlchemy database.

    Change notifications are emitted after the transaction commits, one per row, in the
    order the rows were written.
    """

    name = "SQL"

    def __init__(self) -> None:
        self._feed = ChangeFeed()

    def _query(self, table: str, filters: Row | None):
        model = _model(table)
        stmt = select(model)
        for key, value in (filters or {}).items():
            stmt = stmt.where(_column(model, key) == value)
        return model, stmt

    def insert(self, table: str, row: Row) -> Row:
        return self.insert_many(table, [row])[0]

    def insert_many(self, table: str, rows: list[Row]) -> list[Row]:
        model = _model(table)
        try:
            with session_scope() as db:
                objs = []
                for row in rows:
                    values = _coerce(model, row)
                    if "id" in model.__table__.columns:
                        values.setdefault("id", uuid4().hex)
                    obj = model(**values)
                    db.add(obj)
                    objs.append(obj)
                db.flush()
                stored = [_to_row(obj) for obj in objs]
        except SQLAlchemyError as e:
            logger.warning("Insert into %s failed: %s", table, e)
            raise _wrap(f"Failed to insert into {table}", e) from e

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
        try:
            with session_scope() as db:
                model, stmt = self._query(table, filters)
                if order_by is not None:
                    col = _column(model, order_by)
                    stmt = stmt.order_by(col.desc() if descending else col.asc())
                if limit is not None:
                    stmt = stmt.limit(limit)
                return [_to_row(obj) for obj in db.scalars(stmt).all()]
        except SQLAlchemyError as e:
            raise _wrap(f"Failed to read {table}", e) from e

    def select_one(self, table: str, filters: Row) -> Row:
        rows = self.select(table, filters, limit=1)
        if not rows:
            raise RemoteNotFoundError(table, filters)
        return rows[0]

    def update(self, table: str, filters: Row, changes: Row) -> list[Row]:
        changed: list[tuple[Row, Row]] = []
        try:
            with session_scope() as db:
                model, stmt = self._query(table, filters)
                values = _coerce(model, changes)
                if "updated_at" in model.__table__.columns:
                    values.setdefault("updated_at", datetime.utcnow())
                for obj in db.scalars(stmt).all():
                    old = _to_row(obj)
                    for key, value in values.items():
                        setattr(obj, key, value)
                    db.flush()
                    changed.append((old, _to_row(obj)))
        except SQLAlchemyError as e:
            raise _wrap(f"Failed to update {table}", e) from e

        for old, new in changed:
            self._feed.emit(table, ChangeTypeV1.UPDATE, new=new, old=old)
        return [new for _old, new in changed]

    def delete(self, table: str, filters: Row) -> int:
        removed: list[Row] = []
        try:
            with session_scope() as db:
                _model_cls, stmt = self._query(table, filters)
                for obj in db.scalars(stmt).all():
                    removed.append(_to_row(obj))
                    db.delete(obj)
        except SQLAlchemyError as e:
            raise _wrap(f"Failed to delete from {table}", e) from e

        for row in removed:
            self._feed.emit(table, ChangeTypeV1.DELETE, old=row)
        return len(removed)

    def sign_up(self, email: str, password: str, profile: Row) -> AuthSession:
        try:
            with session_scope() as db:
                existing = db.scalar(
                    select(UserRow).where(func.lower(UserRow.email) == email.strip().lower())
                )
                if existing is not None:
                    raise RemoteAuthError("User already registered")

                user = UserRow(
                    id=uuid4().hex,
                    email=email,
                    password_hash=hash_password(password),
                    role="customer",
                    **_coerce(UserRow, profile),
                )
                db.add(user)
                db.flush()
                session = self._open_session(db, user)
                created = _to_row(user)
        except SQLAlchemyError as e:
            raise _wrap("Failed to create user account", e) from e

        self._feed.emit("users", ChangeTypeV1.INSERT, new=created)
        return session

    def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            with session_scope() as db:
                user = db.scalar(
                    select(UserRow).where(func.lower(UserRow.email) == email.strip().lower())
                )
                if user is None or not verify_password(password, user.password_hash):
                    raise RemoteAuthError("Invalid login credentials")
                return self._open_session(db, user)
        except SQLAlchemyError as e:
            raise _wrap("Sign-in failed", e) from e

    def _open_session(self, db: Session, user: UserRow) -> AuthSession:
        token = uuid4().hex
        db.add(AuthSessionRow(access_token=token, user_id=user.id))
        return AuthSession(access_token=token, user_id=user.id, email=user.email)

    def get_session(self, access_token: str) -> AuthSession | None:
        try:
            with session_scope() as db:
                row = db.get(AuthSessionRow, access_token)
                if row is None:
                    return None
                user = db.get(UserRow, row.user_id)
                if user is None:
                    return None
                return AuthSession(access_token=access_token, user_id=user.id, email=user.email)
        except SQLAlchemyError as e:
            raise _wrap("Failed to read session", e) from e

    def sign_out(self, access_token: str) -> None:
        try:
            with session_scope() as db:
                row = db.get(AuthSessionRow, access_token)
                if row is not None:
                    db.delete(row)
        except SQLAlchemyError as e:
            raise _wrap("Sign-out failed", e) from e

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        event: ChangeTypeV1 | None = None,
        filters: Row | None = None,
    ) -> Callable[[], None]:
        _model(table)
        return self._feed.subscribe(table, callback, event=event, filters=filters)
