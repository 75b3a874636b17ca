from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

_PHONE_RE = re.compile(r"^[\d\s\-\+\(\)]+$")


class UserRole(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    DELIVERY = "delivery"
    PHONE_VENDOR = "phone_vendor"
    LAPTOP_VENDOR = "laptop_vendor"
    RESTAURANT_ADMIN = "restaurant_admin"


ADMIN_ROLES = frozenset(
    {
        UserRole.ADMIN,
        UserRole.PHONE_VENDOR,
        UserRole.LAPTOP_VENDOR,
        UserRole.RESTAURANT_ADMIN,
    }
)


class User(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    address: str | None = None
    role: UserRole = UserRole.CUSTOMER
    created_at: str
    updated_at: str

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    confirm_password: str
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    phone: str = Field(..., min_length=10)
    address: str = Field(..., min_length=10, max_length=200)

    @field_validator("phone")
    @classmethod
    def _valid_phone(cls, value: str) -> str:
        if not _PHONE_RE.match(value):
            raise ValueError("Please enter a valid phone number")
        return value

    @model_validator(mode="after")
    def _passwords_match(self) -> SignupRequest:
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class AuthResult(BaseModel):
    success: bool
    user: User | None = None
    error: str | None = None
    # Where to go next after a successful login (stored return URL or context default).
    redirect_url: str | None = None
