from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from services.portal.app.client import ClientContext, get_client
from services.portal.app.models.lost_and_found import LostAndFoundFormData
from services.portal.app.models.results import FlowResponse
from services.portal.app.routers.responses import flow_response
from services.portal.app.services.flows import LostAndFoundFlow

router = APIRouter()


@router.post("/v1/lost-and-found", response_model=FlowResponse)
def submit_item(
    payload: LostAndFoundFormData, client: ClientContext = Depends(get_client)
) -> FlowResponse:
    flow = LostAndFoundFlow(client.gate, client.pending, client.backend)
    return flow_response(flow.submit(payload))


@router.post("/v1/lost-and-found/resume", response_model=FlowResponse)
def resume_item(client: ClientContext = Depends(get_client)):
    outcome = LostAndFoundFlow(client.gate, client.pending, client.backend).auto_submit_stored()
    if outcome is None:
        return Response(status_code=204)
    return flow_response(outcome)
