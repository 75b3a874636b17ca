"""Pending action payloads saved before an authentication redirect.

Each payload family has its own ``kind`` tag and storage slot. ``context`` is the flow the
payload belongs to (the repair service type, ``lost-and-found`` or ``food``) and is
compared against the page that tries to resume it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from packages.shared.schemas.food import MenuItem
from pydantic import BaseModel, Field, TypeAdapter, field_validator
from services.portal.app.models.lost_and_found import LostAndFoundFormData
from services.portal.app.models.repair import RepairFormData, RepairServiceType


class PendingKind(str, Enum):
    REPAIR_FORM = "repair_form"
    LOST_AND_FOUND = "lost_and_found"
    CART_ADD = "cart_add"


class ResumeStyle(str, Enum):
    # Payload becomes the form defaults; the user submits again.
    PREFILL = "PREFILL"
    # Payload is re-invoked without further interaction.
    AUTO_REPLAY = "AUTO_REPLAY"


LOST_AND_FOUND_CONTEXT = "lost-and-found"
FOOD_CONTEXT = "food"


class _PendingBase(BaseModel):
    redirect_url: str
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class RepairFormPending(_PendingBase):
    kind: Literal["repair_form"] = "repair_form"
    context: RepairServiceType
    form: RepairFormData


class LostAndFoundPending(_PendingBase):
    kind: Literal["lost_and_found"] = "lost_and_found"
    context: Literal["lost-and-found"] = LOST_AND_FOUND_CONTEXT
    form: LostAndFoundFormData


class CartAddPending(_PendingBase):
    kind: Literal["cart_add"] = "cart_add"
    context: Literal["food"] = FOOD_CONTEXT
    menu_item: MenuItem
    quantity: int = Field(1, ge=1)
    special_requests: str | None = None

    @field_validator("special_requests")
    @classmethod
    def _empty_note(cls, value: str | None) -> str | None:
        return value if value and value.strip() else None


PendingAction = Annotated[
    Union[RepairFormPending, LostAndFoundPending, CartAddPending],
    Field(discriminator="kind"),
]

pending_action_adapter: TypeAdapter[PendingAction] = TypeAdapter(PendingAction)

RESUME_STYLES: dict[PendingKind, ResumeStyle] = {
    PendingKind.REPAIR_FORM: ResumeStyle.PREFILL,
    PendingKind.LOST_AND_FOUND: ResumeStyle.AUTO_REPLAY,
    PendingKind.CART_ADD: ResumeStyle.AUTO_REPLAY,
}

# Auth gate context recorded alongside the redirect.
SERVICE_CONTEXTS: dict[PendingKind, str] = {
    PendingKind.REPAIR_FORM: "repair",
    PendingKind.LOST_AND_FOUND: LOST_AND_FOUND_CONTEXT,
    PendingKind.CART_ADD: FOOD_CONTEXT,
}


def kind_for_context(context: str) -> PendingKind | None:
    if context in {t.value for t in RepairServiceType}:
        return PendingKind.REPAIR_FORM
    if context == LOST_AND_FOUND_CONTEXT:
        return PendingKind.LOST_AND_FOUND
    if context == FOOD_CONTEXT:
        return PendingKind.CART_ADD
    return None
