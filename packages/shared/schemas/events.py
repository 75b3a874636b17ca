"""Shared event schema (v1).

Two families of events travel through the portal:

* in-page broadcasts (``auth-changed``, ``cart-updated``) raised whenever local state mutates;
* row change notifications emitted by the remote backend for table subscriptions.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class BroadcastV1(str, Enum):
    AUTH_CHANGED = "auth-changed"
    CART_UPDATED = "cart-updated"


class ChangeTypeV1(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEventV1(BaseModel):
    table: str
    type: ChangeTypeV1

    new: dict[str, Any] = Field(default_factory=dict)
    old: dict[str, Any] = Field(default_factory=dict)
    committed_at: str
