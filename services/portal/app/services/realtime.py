"""Live view of repair orders for vendor dashboards."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from uuid import uuid4

from packages.shared.schemas.events import ChangeEventV1, ChangeTypeV1
from services.portal.app.models.repair import NotificationType, RepairServiceType
from services.portal.app.services.remote_base import RemoteBackend, RemoteBackendError, Row

logger = logging.getLogger(__name__)

MAX_NOTIFICATIONS = 10


@dataclass(frozen=True, slots=True)
class OrderNotification:
    type: NotificationType
    order: Row
    message: str
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _created_on(order: Row) -> date | None:
    raw = order.get("created_at")
    if not raw:
        return None
    try:
        return datetime.fromisoformat(str(raw)).date()
    except ValueError:
        return None


class RealtimeOrders:
    """Keeps ``orders`` in step with the backend's change feed.

    Changes are applied in the order the backend delivers them. Nothing is re-ordered or
    de-duplicated here.
    """

    def __init__(
        self, backend: RemoteBackend, service_type: RepairServiceType | None = None
    ) -> None:
        self._backend = backend
        self.service_type = service_type
        self.orders: list[Row] = []
        self.notifications: list[OrderNotification] = []
        self.error: str | None = None
        self._unsubscribes: list[Callable[[], None]] = []

    @property
    def _filters(self) -> Row | None:
        if self.service_type is None:
            return None
        return {"service_type": self.service_type.value}

    @property
    def unread_count(self) -> int:
        return len(self.notifications)

    def start(self) -> None:
        if self._unsubscribes:
            return
        self.refresh()
        self._unsubscribes = [
            self._backend.subscribe(
                "repair_orders", self._on_insert, event=ChangeTypeV1.INSERT, filters=self._filters
            ),
            self._backend.subscribe(
                "repair_orders", self._on_update, event=ChangeTypeV1.UPDATE, filters=self._filters
            ),
        ]

    def stop(self) -> None:
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes = []

    def refresh(self) -> None:
        try:
            self.orders = self._backend.select(
                "repair_orders", self._filters, order_by="created_at", descending=True
            )
            self.error = None
        except RemoteBackendError as e:
            logger.warning("Fetching repair orders failed: %s", e)
            self.error = "Failed to fetch orders"

    def _notify(self, notification: OrderNotification) -> None:
        self.notifications = [notification, *self.notifications[: MAX_NOTIFICATIONS - 1]]

    def _on_insert(self, change: ChangeEventV1) -> None:
        order = change.new
        self.orders.insert(0, order)
        self._notify(
            OrderNotification(
                type=NotificationType.NEW_ORDER,
                order=order,
                message=f"New {order.get('service_type')} repair order received",
            )
        )

    def _on_update(self, change: ChangeEventV1) -> None:
        new, old = change.new, change.old
        self.orders = [new if o.get("id") == new.get("id") else o for o in self.orders]

        if old.get("status") != new.get("status"):
            self._notify(
                OrderNotification(
                    type=NotificationType.STATUS_CHANGE,
                    order=new,
                    message=f"Order status changed from {old.get('status')} to {new.get('status')}",
                )
            )
        elif old.get("priority") != new.get("priority"):
            self._notify(
                OrderNotification(
                    type=NotificationType.PRIORITY_CHANGE,
                    order=new,
                    message=(
                        f"Order priority changed from {old.get('priority')} "
                        f"to {new.get('priority')}"
                    ),
                )
            )

    def mark_read(self, notification_id: str) -> None:
        self.notifications = [n for n in self.notifications if n.id != notification_id]

    def clear_notifications(self) -> None:
        self.notifications = []

    def orders_by_status(self, status: str) -> list[Row]:
        return [o for o in self.orders if o.get("status") == status]

    def todays_orders(self, today: date | None = None) -> list[Row]:
        today = today or datetime.now(timezone.utc).date()
        return [o for o in self.orders if _created_on(o) == today]


class OrderFeeds:
    """Started feeds shared across dashboard requests, one per service type filter.

    A feed bound to a backend other than the current one is stopped and replaced.
    """

    def __init__(self) -> None:
        self._feeds: dict[RepairServiceType | None, RealtimeOrders] = {}

    def get(
        self, backend: RemoteBackend, service_type: RepairServiceType | None = None
    ) -> RealtimeOrders:
        feed = self._feeds.get(service_type)
        if feed is not None and feed._backend is backend:
            if feed.error is not None:
                feed.refresh()
            return feed

        if feed is not None:
            feed.stop()
        feed = RealtimeOrders(backend, service_type)
        feed.start()
        self._feeds[service_type] = feed
        logger.info("Started repair order feed (service_type=%s)", service_type)
        return feed

    def stop_all(self) -> None:
        for feed in self._feeds.values():
            feed.stop()
        self._feeds.clear()
