from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from services.portal.app.client import ClientContext, get_client
from services.portal.app.models.repair import (
    RepairFormData,
    RepairServiceType,
    RepairStatusUpdate,
)
from services.portal.app.models.results import FlowResponse
from services.portal.app.routers.responses import flow_response, operation_data
from services.portal.app.services.flows import RepairFlow
from services.portal.app.services.orders import (
    list_user_repair_orders,
    update_repair_order_status,
)

router = APIRouter()


def _repair_flow(client: ClientContext, service_type: RepairServiceType) -> RepairFlow:
    return RepairFlow(client.gate, client.pending, client.backend, service_type)


@router.get("/v1/repair/orders")
def list_repair_orders(client: ClientContext = Depends(get_client)) -> list[dict]:
    user = client.gate.get_current_user_sync()
    return operation_data(list_user_repair_orders(client.backend, user))


@router.patch("/v1/repair/orders/{order_id}/status")
def set_repair_order_status(
    order_id: str,
    payload: RepairStatusUpdate,
    client: ClientContext = Depends(get_client),
) -> dict:
    if not client.gate.has_admin_privileges():
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return operation_data(update_repair_order_status(client.backend, order_id, payload))


@router.post("/v1/repair/{service_type}", response_model=FlowResponse)
def submit_repair(
    service_type: RepairServiceType,
    payload: RepairFormData,
    client: ClientContext = Depends(get_client),
) -> FlowResponse:
    return flow_response(_repair_flow(client, service_type).submit(payload))


@router.get("/v1/repair/{service_type}/pending", response_model=RepairFormData | None)
def get_pending_repair(
    service_type: RepairServiceType, client: ClientContext = Depends(get_client)
) -> RepairFormData | None:
    return _repair_flow(client, service_type).stored_form()


@router.delete("/v1/repair/{service_type}/pending")
def discard_pending_repair(
    service_type: RepairServiceType, client: ClientContext = Depends(get_client)
) -> dict:
    _repair_flow(client, service_type).clear_stored()
    return {"status": "ok"}
