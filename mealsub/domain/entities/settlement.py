from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from mealsub.domain.entities.subscription import ResolvedStatus, Subscription


SubscriptionAction = Literal["NONE", "MODIFY", "UPGRADE", "RENEW"]

SettlementState = Literal[
    "committed",
    "settled",
    "cancelled",
    "payment_failed",
    "store_failed",
    "reconciliation_required",
]


@dataclass(frozen=True)
class ActionDecision:
    action: SubscriptionAction
    subscription: Subscription | None
    subscription_status: ResolvedStatus | None


@dataclass(frozen=True)
class SettlementCharge:
    charge_amount: int
    wallet_credit: int
    extra_charge: int
    used_full_price_fallback: bool


@dataclass(frozen=True)
class SettlementIncident:
    id: str
    subscription_id: str | None
    user_id: str
    action: SubscriptionAction
    amount: int
    payment_id: str
    payment_order_reference: str
    payment_signature: str | None
    reason: str
    created_at: datetime
