from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_PHONE_RE = re.compile(r"^\+?[\d\s\-\(\)]+$")


class RepairServiceType(str, Enum):
    PHONE = "phone"
    LAPTOP = "laptop"


class RepairStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RepairPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class RepairFormData(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=10)
    alternate_contact: str | None = None
    device_model: str = Field(..., min_length=1)
    problem_description: str = Field(..., min_length=10)

    @field_validator("phone_number")
    @classmethod
    def _valid_phone(cls, value: str) -> str:
        if not _PHONE_RE.match(value) or len(re.sub(r"\D", "", value)) < 10:
            raise ValueError("Phone number must be at least 10 digits")
        return value


class RepairStatusUpdate(BaseModel):
    status: RepairStatus
    technician_notes: str | None = None


class NotificationType(str, Enum):
    NEW_ORDER = "new_order"
    STATUS_CHANGE = "status_change"
    PRIORITY_CHANGE = "priority_change"


class OrderNotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: NotificationType
    message: str
    timestamp: datetime
    order: dict[str, Any]


class RepairDashboard(BaseModel):
    service_type: RepairServiceType | None = None
    orders: list[dict[str, Any]] = Field(default_factory=list)
    notifications: list[OrderNotificationOut] = Field(default_factory=list)
    unread_count: int = 0
    today_count: int = 0
    error: str | None = None
