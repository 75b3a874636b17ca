"""Per-request wiring of the core services for one HTTP client.

``X-Client-Id`` stands in for the browser (its durable local storage) and ``X-Tab-Id`` for
one tab (its session storage). Requests from two tabs of the same client share the cart and
the auth snapshot but not pending actions.
"""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException
from services.portal.app.db.database import db_session
from services.portal.app.services.auth import AuthGate
from services.portal.app.services.cart import CartEngine
from services.portal.app.services.events import EventBus
from services.portal.app.services.pending import PendingActions
from services.portal.app.services.remote_base import RemoteBackend
from services.portal.app.services.remote_factory import get_remote_backend
from services.portal.app.services.storage import LOCAL_SCOPE, SESSION_SCOPE, SqlStorage
from services.portal.app.settings import pending_action_ttl
from sqlalchemy.orm import Session

DEFAULT_TAB_ID = "main"


def get_db() -> Generator[Session, None, None]:
    db = db_session()
    try:
        yield db
    finally:
        db.close()


def get_backend() -> RemoteBackend:
    try:
        return get_remote_backend()
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@dataclass
class ClientContext:
    client_id: str
    tab_id: str
    local: SqlStorage
    session: SqlStorage
    backend: RemoteBackend
    bus: EventBus
    gate: AuthGate
    cart: CartEngine
    pending: PendingActions

    def close(self) -> None:
        self.gate.close()
        self.cart.close()


def get_client(
    x_client_id: str = Header(..., min_length=1),
    x_tab_id: str = Header(DEFAULT_TAB_ID, min_length=1),
    db: Session = Depends(get_db),
    backend: RemoteBackend = Depends(get_backend),
) -> Generator[ClientContext, None, None]:
    try:
        ttl = pending_action_ttl()
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    local = SqlStorage(db, x_client_id, LOCAL_SCOPE)
    session = SqlStorage(db, f"{x_client_id}:{x_tab_id}", SESSION_SCOPE)
    bus = EventBus()
    ctx = ClientContext(
        client_id=x_client_id,
        tab_id=x_tab_id,
        local=local,
        session=session,
        backend=backend,
        bus=bus,
        gate=AuthGate(local, session, backend, bus),
        cart=CartEngine(local, bus),
        pending=PendingActions(session, ttl=ttl),
    )
    try:
        yield ctx
    finally:
        ctx.close()
