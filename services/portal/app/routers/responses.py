from __future__ import annotations

from typing import Any, NoReturn

from fastapi import HTTPException
from services.portal.app.models.results import (
    FlowOutcome,
    FlowResponse,
    FlowStatus,
    OperationResult,
)
from services.portal.app.services.orders import ORDER_NOT_FOUND
from services.portal.app.services.remote_base import (
    RemoteAuthError,
    RemoteBackendError,
    RemoteNotFoundError,
)


def raise_remote_http_error(e: Exception) -> NoReturn:
    if isinstance(e, RemoteNotFoundError):
        raise HTTPException(status_code=404, detail=str(e)) from e

    if isinstance(e, RemoteAuthError):
        raise HTTPException(status_code=401, detail=str(e)) from e

    if isinstance(e, RemoteBackendError):
        raise HTTPException(status_code=502, detail=str(e)) from e

    raise HTTPException(status_code=500, detail="Internal Server Error") from e


def flow_response(outcome: FlowOutcome) -> FlowResponse:
    if outcome.status == FlowStatus.INVALID:
        raise HTTPException(
            status_code=422,
            detail={"errors": outcome.errors, "redirect_url": outcome.redirect_url},
        )

    if outcome.status == FlowStatus.FAILED:
        raise HTTPException(status_code=502, detail=outcome.error or "Remote operation failed")

    return FlowResponse(
        status=outcome.status, data=outcome.data, redirect_url=outcome.redirect_url
    )


def operation_data(result: OperationResult) -> Any:
    if result.success:
        return result.data

    if result.auth_required:
        raise HTTPException(status_code=401, detail=result.error)

    if result.error == ORDER_NOT_FOUND:
        raise HTTPException(status_code=404, detail=result.error)

    raise HTTPException(status_code=502, detail=result.error or "Remote operation failed")
