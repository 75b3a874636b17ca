from __future__ import annotations

from datetime import date

from services.portal.app.models.repair import RepairServiceType
from services.portal.app.services.realtime import NotificationType, OrderFeeds, RealtimeOrders
from services.portal.app.services.remote_base import RemoteUnavailableError
from services.portal.app.services.remote_mock import MockRemoteBackend


def _order(backend: MockRemoteBackend, service_type: str = "phone", **extra) -> dict:
    row = {"service_type": service_type, "status": "pending", "priority": "normal", **extra}
    return backend.insert("repair_orders", row)


def test_start_loads_matching_orders_newest_first() -> None:
    backend = MockRemoteBackend()
    _order(backend, created_at="2024-05-01T09:00:00+00:00", device_model="old")
    _order(backend, created_at="2024-05-02T09:00:00+00:00", device_model="new")
    _order(backend, "laptop", created_at="2024-05-03T09:00:00+00:00")

    feed = RealtimeOrders(backend, RepairServiceType.PHONE)
    feed.start()

    assert [o["device_model"] for o in feed.orders] == ["new", "old"]
    assert feed.notifications == []


def test_inserts_are_prepended_with_notification() -> None:
    backend = MockRemoteBackend()
    feed = RealtimeOrders(backend, RepairServiceType.PHONE)
    feed.start()

    order = _order(backend)
    _order(backend, "laptop")

    assert [o["id"] for o in feed.orders] == [order["id"]]
    assert feed.unread_count == 1
    note = feed.notifications[0]
    assert note.type == NotificationType.NEW_ORDER
    assert note.message == "New phone repair order received"


def test_updates_replace_in_place_and_describe_the_change() -> None:
    backend = MockRemoteBackend()
    order = _order(backend)
    feed = RealtimeOrders(backend)
    feed.start()

    backend.update("repair_orders", {"id": order["id"]}, {"status": "in_progress"})
    backend.update("repair_orders", {"id": order["id"]}, {"priority": "urgent"})
    backend.update("repair_orders", {"id": order["id"]}, {"technician_notes": "waiting on part"})

    assert len(feed.orders) == 1
    assert feed.orders[0]["priority"] == "urgent"
    assert feed.orders[0]["technician_notes"] == "waiting on part"
    assert [n.type for n in feed.notifications] == [
        NotificationType.PRIORITY_CHANGE,
        NotificationType.STATUS_CHANGE,
    ]
    assert feed.notifications[1].message == "Order status changed from pending to in_progress"


def test_notifications_are_capped() -> None:
    backend = MockRemoteBackend()
    feed = RealtimeOrders(backend)
    feed.start()

    for _ in range(12):
        _order(backend)

    assert len(feed.orders) == 12
    assert len(feed.notifications) == 10


def test_mark_read_and_clear() -> None:
    backend = MockRemoteBackend()
    feed = RealtimeOrders(backend)
    feed.start()
    _order(backend)
    _order(backend)

    feed.mark_read(feed.notifications[0].id)
    assert feed.unread_count == 1

    feed.clear_notifications()
    assert feed.notifications == []


def test_stop_detaches_from_feed() -> None:
    backend = MockRemoteBackend()
    feed = RealtimeOrders(backend)
    feed.start()
    feed.stop()

    _order(backend)

    assert feed.orders == []
    assert feed.notifications == []


def test_start_twice_does_not_double_subscribe() -> None:
    backend = MockRemoteBackend()
    feed = RealtimeOrders(backend)
    feed.start()
    feed.start()

    _order(backend)

    assert len(feed.orders) == 1


def test_filters_by_status_and_day() -> None:
    backend = MockRemoteBackend()
    _order(backend, status="completed", created_at="2024-05-01T10:00:00+00:00")
    _order(backend, status="pending", created_at="2024-05-02T10:00:00+00:00")
    feed = RealtimeOrders(backend)
    feed.refresh()

    assert len(feed.orders_by_status("completed")) == 1
    assert [o["status"] for o in feed.todays_orders(date(2024, 5, 2))] == ["pending"]


def test_refresh_failure_is_reported() -> None:
    backend = MockRemoteBackend()
    backend.fail_next("select", "repair_orders", RemoteUnavailableError("down"))
    feed = RealtimeOrders(backend)

    feed.refresh()

    assert feed.error == "Failed to fetch orders"
    feed.refresh()
    assert feed.error is None


def test_order_feeds_share_one_started_feed_per_service_type() -> None:
    backend = MockRemoteBackend()
    feeds = OrderFeeds()

    phone = feeds.get(backend, RepairServiceType.PHONE)
    assert feeds.get(backend, RepairServiceType.PHONE) is phone
    everything = feeds.get(backend)
    assert everything is not phone

    _order(backend)

    assert len(phone.orders) == 1
    assert len(everything.orders) == 1


def test_order_feeds_rebind_to_a_new_backend_and_stop_all() -> None:
    old, new = MockRemoteBackend(), MockRemoteBackend()
    feeds = OrderFeeds()
    stale = feeds.get(old)

    fresh = feeds.get(new)
    _order(old)

    assert fresh is not stale
    assert stale.orders == []

    feeds.stop_all()
    _order(new)
    assert fresh.orders == []
