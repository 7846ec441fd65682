from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from mealsub.domain.entities.payment import PaymentProof
from mealsub.domain.entities.plan import Plan
from mealsub.domain.entities.proration import ProrationResult
from mealsub.domain.entities.settlement import (
    SettlementCharge,
    SettlementState,
    SubscriptionAction,
)
from mealsub.domain.entities.subscription import (
    ResolvedStatus,
    Subscription,
    SubscriptionState,
    SubscriptionStatus,
)


@dataclass(frozen=True)
class SubscriptionSelectionInput:
    user_id: str
    dietary_preference: str
    plan_type: str
    person_count: int
    start_date: datetime | None
    time_slot: str
    delivery_address_id: str
    payment_customer_id: str | None = None


@dataclass(frozen=True)
class SubscriptionQuoteInput:
    user_id: str
    dietary_preference: str
    plan_type: str
    person_count: int


@dataclass(frozen=True)
class SubscriptionQuoteOutput:
    action: SubscriptionAction
    subscription_id: str | None
    subscription_status: ResolvedStatus | None
    plan: Plan
    proration: ProrationResult | None
    charge: SettlementCharge


@dataclass(frozen=True)
class SettlementOutput:
    state: SettlementState
    action: SubscriptionAction
    subscription: Subscription | None
    proration: ProrationResult | None
    charge: SettlementCharge
    payment_proof: PaymentProof | None = None
    failure_reason: str | None = None
    retryable: bool = False
    incident_id: str | None = None


@dataclass(frozen=True)
class ListSubscriptionsOutput:
    items: list[SubscriptionState]


@dataclass(frozen=True)
class NewSubscription:
    user_id: str
    plan_type: str
    dietary_preference: str
    price: int
    person_count: int
    meals_per_month: int
    start_date: datetime
    delivery_address_id: str
    time_slot: str
    payment_id: str | None
    payment_order_reference: str | None
    payment_signature: str | None


@dataclass(frozen=True)
class SubscriptionPatch:
    expected_version: int
    plan_type: str
    dietary_preference: str
    price: int
    person_count: int
    meals_per_month: int
    start_date: datetime
    delivery_address_id: str
    time_slot: str
    status: SubscriptionStatus
    wallet_credit_applied: int | None
    extra_charge_applied: int | None
    payment_id: str | None
    payment_order_reference: str | None
    payment_signature: str | None


@dataclass(frozen=True)
class SubscriptionModification:
    expected_version: int | None
    resume_date: datetime
    end_date: datetime
    time_slot: str
    delivery_address_id: str
    person_count: int


@dataclass(frozen=True)
class UpdateSubscriptionStatusInput:
    subscription_id: str
    status: str


@dataclass(frozen=True)
class ExtendSubscriptionInput:
    subscription_id: str
    days: int
