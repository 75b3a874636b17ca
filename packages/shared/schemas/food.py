"""Shared food ordering schemas (catalog + cart).

Prices are integer cents. The cart total is always derived from its lines.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, computed_field, field_validator


class Restaurant(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    is_active: bool = True
    opening_time: str = "09:00"
    closing_time: str = "22:00"
    delivery_fee_cents: int = Field(0, ge=0)
    minimum_order_cents: int = Field(0, ge=0)


class MenuItem(BaseModel):
    id: str
    restaurant_id: str
    name: str
    description: str | None = None
    price_cents: int = Field(..., ge=0)
    category: str | None = None
    is_available: bool = True
    # Minutes.
    preparation_time: int = 15


def normalize_special_requests(value: str | None) -> str | None:
    """Empty and whitespace-only notes mean "no note"."""

    if value is None or not value.strip():
        return None
    return value


class CartItem(BaseModel):
    # Snapshot taken at add time; not refreshed from the catalog.
    menu_item: MenuItem
    quantity: int = Field(..., ge=1)
    special_requests: str | None = None

    @field_validator("special_requests")
    @classmethod
    def _normalize_note(cls, value: str | None) -> str | None:
        return normalize_special_requests(value)

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.menu_item.id, self.special_requests)

    @computed_field
    @property
    def line_total_cents(self) -> int:
        return self.menu_item.price_cents * self.quantity


class Cart(BaseModel):
    restaurant_id: str
    items: list[CartItem] = Field(default_factory=list)

    @computed_field
    @property
    def total_amount_cents(self) -> int:
        return sum(item.line_total_cents for item in self.items)


class CartTotals(BaseModel):
    subtotal_cents: int
    delivery_fee_cents: int
    tax_cents: int
    total_cents: int


class CartValidation(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
