"""Order submission adapters.

Each function makes the remote calls for one operation and reports a uniform
``OperationResult``. Nothing here retries; remote errors are logged and returned.
"""

from __future__ import annotations

import logging
import random
import string
import time

from services.portal.app.models.checkout import FoodOrderDraft
from services.portal.app.models.lost_and_found import LostAndFoundFormData
from services.portal.app.models.repair import (
    RepairFormData,
    RepairPriority,
    RepairServiceType,
    RepairStatus,
    RepairStatusUpdate,
)
from services.portal.app.models.results import OperationResult
from services.portal.app.models.user import User
from services.portal.app.services.remote_base import (
    RemoteBackend,
    RemoteBackendError,
    RemoteNotFoundError,
    Row,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase

NOT_AUTHENTICATED = "User not authenticated"
ORDER_NOT_FOUND = "Order not found"


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_BASE36[r])
    return "".join(reversed(out))


def generate_order_token() -> str:
    """Human-readable order reference: ``<base36 ms timestamp>-<6 random chars>``.

    Not guaranteed unique; collisions are unlikely enough for display purposes.
    """

    stamp = _base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"{stamp}-{suffix}".upper()


def _auth_required() -> OperationResult:
    return OperationResult(success=False, error=NOT_AUTHENTICATED, auth_required=True)


def _failed(what: str, e: RemoteBackendError) -> OperationResult:
    logger.warning("%s failed: %s", what, e)
    return OperationResult(success=False, error=str(e) or f"{what} failed")


# Food


def create_food_order(
    backend: RemoteBackend, user: User | None, draft: FoodOrderDraft
) -> OperationResult:
    if user is None:
        return _auth_required()

    order_row = {
        "user_id": user.id,
        "restaurant_id": draft.restaurant_id,
        "order_token": draft.order_token,
        "status": "pending",
        "total_amount_cents": draft.totals.total_cents,
        "delivery_fee_cents": draft.totals.delivery_fee_cents,
        "tax_amount_cents": draft.totals.tax_cents,
        "delivery_address": draft.delivery_address,
        "delivery_phone": draft.delivery_phone,
        "special_instructions": draft.special_instructions,
        "estimated_delivery_time": draft.estimated_delivery_time,
    }
    try:
        order = backend.insert("food_orders", order_row)
    except RemoteBackendError as e:
        return _failed("Create food order", e)

    item_rows = [
        {
            "order_id": order["id"],
            "menu_item_id": item.menu_item.id,
            "quantity": item.quantity,
            "unit_price_cents": item.menu_item.price_cents,
            "total_price_cents": item.line_total_cents,
            "special_requests": item.special_requests,
        }
        for item in draft.items
    ]
    try:
        items = backend.insert_many("food_order_items", item_rows)
    except RemoteBackendError as e:
        # Don't leave an order without items behind.
        try:
            backend.delete("food_orders", {"id": order["id"]})
        except RemoteBackendError:
            logger.exception("Could not remove orphaned food order %s", order["id"])
        return _failed("Create food order items", e)

    logger.info("Food order %s created for user %s", draft.order_token, user.id)
    return OperationResult(success=True, data={**order, "items": items})


def _with_items(backend: RemoteBackend, order: Row) -> Row:
    items = backend.select("food_order_items", {"order_id": order["id"]})
    return {**order, "items": items}


def list_user_food_orders(backend: RemoteBackend, user: User | None) -> OperationResult:
    if user is None:
        return _auth_required()
    try:
        orders = backend.select(
            "food_orders", {"user_id": user.id}, order_by="created_at", descending=True
        )
        return OperationResult(success=True, data=[_with_items(backend, o) for o in orders])
    except RemoteBackendError as e:
        return _failed("Fetch food orders", e)


def get_food_order_by_token(
    backend: RemoteBackend, user: User | None, order_token: str
) -> OperationResult:
    if user is None:
        return _auth_required()
    try:
        # Scoped to the caller so one user cannot read another's order by token.
        order = backend.select_one("food_orders", {"order_token": order_token, "user_id": user.id})
        return OperationResult(success=True, data=_with_items(backend, order))
    except RemoteNotFoundError:
        return OperationResult(success=False, error=ORDER_NOT_FOUND)
    except RemoteBackendError as e:
        return _failed("Fetch food order", e)


# Repair


def create_repair_order(
    backend: RemoteBackend,
    user: User | None,
    form: RepairFormData,
    service_type: RepairServiceType,
) -> OperationResult:
    if user is None:
        return _auth_required()

    try:
        service = backend.select_one("service_types", {"name": service_type.value})
    except RemoteNotFoundError:
        logger.warning("Service type %s is not configured", service_type.value)
        return OperationResult(success=False, error="Invalid service type")
    except RemoteBackendError as e:
        return _failed("Resolve service type", e)

    row = {
        "user_id": user.id,
        "service_type_id": service["id"],
        "service_type": service_type.value,
        **form.model_dump(),
        "status": RepairStatus.PENDING.value,
        "priority": RepairPriority.NORMAL.value,
    }
    try:
        order = backend.insert("repair_orders", row)
    except RemoteBackendError as e:
        return _failed("Create repair order", e)

    logger.info(
        "Repair order %s (%s) created for user %s", order["id"], service_type.value, user.id
    )
    return OperationResult(success=True, data=order)


def list_user_repair_orders(backend: RemoteBackend, user: User | None) -> OperationResult:
    if user is None:
        return _auth_required()
    try:
        orders = backend.select(
            "repair_orders", {"user_id": user.id}, order_by="created_at", descending=True
        )
    except RemoteBackendError as e:
        return _failed("Fetch repair orders", e)
    return OperationResult(success=True, data=orders)


def update_repair_order_status(
    backend: RemoteBackend, order_id: str, update: RepairStatusUpdate
) -> OperationResult:
    changes: Row = {"status": update.status.value}
    if update.technician_notes:
        changes["technician_notes"] = update.technician_notes
    if update.status == RepairStatus.COMPLETED:
        changes["completion_date"] = utc_now_iso()

    try:
        rows = backend.update("repair_orders", {"id": order_id}, changes)
    except RemoteBackendError as e:
        return _failed("Update repair order", e)

    if not rows:
        return OperationResult(success=False, error=ORDER_NOT_FOUND)
    return OperationResult(success=True, data=rows[0])


# Lost and found


def submit_lost_and_found_item(
    backend: RemoteBackend, user: User | None, form: LostAndFoundFormData
) -> OperationResult:
    if user is None:
        return _auth_required()

    row = {"user_id": user.id, **form.model_dump(mode="json"), "status": "active"}
    try:
        item = backend.insert("lost_and_found", row)
    except RemoteBackendError as e:
        return _failed("Submit lost and found item", e)

    logger.info("Lost and found item %s reported by user %s", item["id"], user.id)
    return OperationResult(success=True, data=item)
