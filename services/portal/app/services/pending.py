"""Pending actions kept in tab-scoped session storage across an authentication redirect.

Slot lifecycle: EMPTY -> STORED on redirect; STORED -> EMPTY after a successful replay or
when the payload is found expired, mismatched or unreadable; a failed replay leaves the
slot STORED.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError
from services.portal.app.models.pending import (
    PendingAction,
    PendingKind,
    kind_for_context,
    pending_action_adapter,
)
from services.portal.app.services.storage import (
    PENDING_CART_ACTION_KEY,
    PENDING_LOST_AND_FOUND_KEY,
    PENDING_REPAIR_KEY,
    Storage,
    read_json,
    write_json,
)
from services.portal.app.settings import pending_action_ttl

logger = logging.getLogger(__name__)

SLOT_KEYS: dict[PendingKind, str] = {
    PendingKind.REPAIR_FORM: PENDING_REPAIR_KEY,
    PendingKind.LOST_AND_FOUND: PENDING_LOST_AND_FOUND_KEY,
    PendingKind.CART_ADD: PENDING_CART_ACTION_KEY,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _read_slot(storage: Storage, kind: PendingKind) -> PendingAction | None:
    key = SLOT_KEYS[kind]
    data = read_json(storage, key)
    if data is None:
        return None

    try:
        action = pending_action_adapter.validate_python(data)
    except ValidationError:
        logger.warning("Discarding unreadable pending action key=%s", key)
        storage.remove(key)
        return None

    if action.kind != kind.value:
        logger.warning("Discarding %s payload found under key=%s", action.kind, key)
        storage.remove(key)
        return None
    return action


def _is_expired(action: PendingAction, now: datetime, ttl: timedelta) -> bool:
    return now - action.timestamp >= ttl


def resume_pending_action(
    storage: Storage,
    current_context: str,
    ttl: timedelta | None = None,
    now: datetime | None = None,
) -> PendingAction | None:
    """Return the payload waiting for ``current_context``, if any.

    Expired or mismatched payloads are deleted and never returned. Reading does not consume:
    the caller removes the slot once the resumed action has succeeded.
    """

    kind = kind_for_context(current_context)
    if kind is None:
        return None

    action = _read_slot(storage, kind)
    if action is None:
        return None

    ttl = ttl if ttl is not None else pending_action_ttl()
    now = now if now is not None else utc_now()

    if _is_expired(action, now, ttl):
        logger.info("Discarding expired %s pending action from %s", action.kind, action.timestamp)
        storage.remove(SLOT_KEYS[kind])
        return None

    if action.context != current_context:
        logger.info(
            "Discarding %s pending action for context=%s on context=%s",
            action.kind,
            action.context,
            current_context,
        )
        storage.remove(SLOT_KEYS[kind])
        return None

    return action


class PendingActions:
    def __init__(
        self,
        storage: Storage,
        ttl: timedelta | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._storage = storage
        self._ttl = ttl
        self._clock = clock or utc_now

    @property
    def ttl(self) -> timedelta:
        return self._ttl if self._ttl is not None else pending_action_ttl()

    def now(self) -> datetime:
        return self._clock()

    def stash(self, action: PendingAction) -> None:
        kind = PendingKind(action.kind)
        write_json(self._storage, SLOT_KEYS[kind], action.model_dump(mode="json"))
        logger.info("Stored %s pending action for %s", action.kind, action.redirect_url)

    def load(self, kind: PendingKind) -> PendingAction | None:
        """Read a slot regardless of context. Expired payloads are still deleted."""

        action = _read_slot(self._storage, kind)
        if action is None:
            return None
        if _is_expired(action, self.now(), self.ttl):
            self.discard(kind)
            return None
        return action

    def resume(self, context: str) -> PendingAction | None:
        return resume_pending_action(self._storage, context, self.ttl, self.now())

    def discard(self, kind: PendingKind) -> None:
        self._storage.remove(SLOT_KEYS[kind])
