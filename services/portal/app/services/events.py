from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

from packages.shared.schemas.events import BroadcastV1
from packages.shared.schemas.food import Cart
from services.portal.app.models.user import User

logger = logging.getLogger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class Subject(Generic[T]):
    """A named broadcast channel.

    Listeners run synchronously in subscription order. A failing listener is logged and does
    not stop delivery to the others.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Unsubscribe:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("Listener failed for %s", self.name)

    def __len__(self) -> int:
        return len(self._listeners)


class EventBus:
    def __init__(self) -> None:
        self.auth_changed: Subject[User | None] = Subject(BroadcastV1.AUTH_CHANGED.value)
        self.cart_updated: Subject[Cart | None] = Subject(BroadcastV1.CART_UPDATED.value)
