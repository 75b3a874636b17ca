from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class LostAndFoundCategory(str, Enum):
    LOST = "lost"
    FOUND = "found"


class LostAndFoundFormData(BaseModel):
    item_name: str = Field(..., min_length=1, max_length=100)
    item_image_url: str | None = None
    category: LostAndFoundCategory
    place: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    contact_phone: str | None = None

    @field_validator("item_name", "place")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("description", "contact_phone")
    @classmethod
    def _strip_optional(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None
