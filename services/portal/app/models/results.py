from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class OperationResult(BaseModel):
    """Uniform result of a single remote operation."""

    success: bool
    data: Any = None
    error: str | None = None
    # Set when the operation could not run because nobody is signed in.
    auth_required: bool = False


class FlowStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID = "INVALID"
    FAILED = "FAILED"


class FlowOutcome(BaseModel):
    status: FlowStatus
    data: Any = None
    error: str | None = None
    errors: list[str] = Field(default_factory=list)
    redirect_url: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == FlowStatus.SUBMITTED


class FlowResponse(BaseModel):
    """HTTP body for a flow that ran or needs a login first."""

    status: FlowStatus
    data: Any = None
    redirect_url: str | None = None
