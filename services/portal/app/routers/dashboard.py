from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from services.portal.app.client import ClientContext, get_client
from services.portal.app.models.repair import (
    OrderNotificationOut,
    RepairDashboard,
    RepairServiceType,
    RepairStatus,
)
from services.portal.app.models.user import UserRole
from services.portal.app.services.realtime import OrderFeeds, RealtimeOrders

router = APIRouter()

# Vendors only ever see their own service.
VENDOR_SCOPES = {
    UserRole.PHONE_VENDOR: RepairServiceType.PHONE,
    UserRole.LAPTOP_VENDOR: RepairServiceType.LAPTOP,
}


def get_order_feeds(request: Request) -> OrderFeeds:
    return request.app.state.order_feeds


def _feed(
    client: ClientContext, feeds: OrderFeeds, service_type: RepairServiceType | None
) -> RealtimeOrders:
    user = client.gate.get_current_user_sync()
    if user is None or not client.gate.has_admin_privileges():
        raise HTTPException(status_code=403, detail="Admin privileges required")

    scope = VENDOR_SCOPES.get(user.role)
    if scope is not None:
        if service_type not in (None, scope):
            raise HTTPException(status_code=403, detail=f"Not a {service_type.value} vendor")
        service_type = scope
    return feeds.get(client.backend, service_type)


@router.get("/v1/dashboard/repair-orders", response_model=RepairDashboard)
def repair_dashboard(
    service_type: RepairServiceType | None = None,
    status: RepairStatus | None = None,
    client: ClientContext = Depends(get_client),
    feeds: OrderFeeds = Depends(get_order_feeds),
) -> RepairDashboard:
    feed = _feed(client, feeds, service_type)
    orders = feed.orders_by_status(status.value) if status is not None else feed.orders
    return RepairDashboard(
        service_type=feed.service_type,
        orders=orders,
        notifications=[OrderNotificationOut.model_validate(n) for n in feed.notifications],
        unread_count=feed.unread_count,
        today_count=len(feed.todays_orders()),
        error=feed.error,
    )


@router.delete("/v1/dashboard/notifications/{notification_id}")
def mark_notification_read(
    notification_id: str,
    service_type: RepairServiceType | None = None,
    client: ClientContext = Depends(get_client),
    feeds: OrderFeeds = Depends(get_order_feeds),
) -> dict:
    _feed(client, feeds, service_type).mark_read(notification_id)
    return {"status": "ok"}


@router.delete("/v1/dashboard/notifications")
def clear_notifications(
    service_type: RepairServiceType | None = None,
    client: ClientContext = Depends(get_client),
    feeds: OrderFeeds = Depends(get_order_feeds),
) -> dict:
    _feed(client, feeds, service_type).clear_notifications()
    return {"status": "ok"}
