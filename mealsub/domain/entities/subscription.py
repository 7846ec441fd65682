from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal


SubscriptionStatus = Literal[
    "pending",
    "active",
    "inactive",
    "completed",
    "cancelled",
]

# Status as seen by customers and by the action classifier.
ResolvedStatus = Literal["active", "inactive", "completed", "cancelled"]

SUBSCRIPTION_STATUSES: tuple[SubscriptionStatus, ...] = (
    "pending",
    "active",
    "inactive",
    "completed",
    "cancelled",
)

MIN_PERSON_COUNT = 1
MAX_PERSON_COUNT = 10


@dataclass(frozen=True)
class Subscription:
    id: str
    user_id: str
    plan_type: str
    dietary_preference: str
    price: int | None
    person_count: int | None
    meals_per_month: int | None
    start_date: datetime | None
    end_date: datetime | None
    status: SubscriptionStatus
    delivery_address_id: str | None
    time_slot: str | None
    wallet_credit_applied: int | None
    extra_charge_applied: int | None
    payment_id: str | None
    payment_order_reference: str | None
    payment_signature: str | None
    version: int
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class SubscriptionState:
    subscription: Subscription
    status: ResolvedStatus
    end_date: date | None
    days_remaining: int


def is_cancelled(subscription: Subscription) -> bool:
    return subscription.status == "cancelled"


def is_current_status(status: str) -> bool:
    return status in {"active", "inactive"}
