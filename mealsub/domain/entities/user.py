from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal


UserRole = Literal["customer", "manager", "admin"]


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    is_active: bool
    role: UserRole
    stripe_customer_id: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class DeliveryAddress:
    id: str
    user_id: str
    label: str
    address_line: str
    pincode: str | None


def is_staff(user: User) -> bool:
    return user.role in {"manager", "admin"}
