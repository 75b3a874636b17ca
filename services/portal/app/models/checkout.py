from __future__ import annotations

import re

from email_validator import EmailNotValidError, validate_email
from packages.shared.schemas.food import Cart, CartItem, CartTotals
from pydantic import BaseModel, Field

_PHONE_RE = re.compile(r"^\+?[\d\s\-\(\)]+$")


def _valid_email(value: str) -> bool:
    # Same rules as EmailStr on signup.
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


class CheckoutForm(BaseModel):
    """Delivery details collected on the checkout page.

    Kept permissive on purpose: ``errors()`` reports every problem at once so the page can
    show them inline instead of failing on the first one.
    """

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    zip_code: str = ""
    special_instructions: str | None = None

    def errors(self) -> list[str]:
        out: list[str] = []
        if not self.first_name.strip():
            out.append("First name is required")
        if not self.last_name.strip():
            out.append("Last name is required")
        if not self.email.strip():
            out.append("Email is required")
        if not self.phone.strip():
            out.append("Phone number is required")
        if not self.address.strip():
            out.append("Address is required")

        if self.email.strip() and not _valid_email(self.email.strip()):
            out.append("Please enter a valid email address")
        if self.phone and not _PHONE_RE.match(self.phone):
            out.append("Please enter a valid phone number")
        return out

    def delivery_address(self) -> str:
        parts = [self.address.strip(), self.city.strip(), self.zip_code.strip()]
        return ", ".join(p for p in parts if p)


class FoodOrderDraft(BaseModel):
    restaurant_id: str
    order_token: str
    totals: CartTotals
    delivery_address: str
    delivery_phone: str
    special_instructions: str | None = None
    estimated_delivery_time: str | None = None
    items: list[CartItem] = Field(..., min_length=1)


class CartItemAddRequest(BaseModel):
    menu_item_id: str
    quantity: int = Field(1, ge=1)
    special_requests: str | None = None
    return_url: str | None = None


class CartQuantityRequest(BaseModel):
    quantity: int
    special_requests: str | None = None


class CheckoutOpenRequest(BaseModel):
    return_url: str


class CheckoutRequest(BaseModel):
    restaurant_slug: str
    form: CheckoutForm


class CartResponse(BaseModel):
    cart: Cart | None = None
    item_count: int = 0


class CartSummary(BaseModel):
    cart: Cart
    totals: CartTotals
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    formatted_total: str
