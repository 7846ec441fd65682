from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


class SubscriptionQuoteRequest(BaseModel):
    dietary_preference: str = Field(..., min_length=1)
    plan_type: str = Field(..., min_length=1)
    person_count: int = 1


class SubscriptionSettleRequest(SubscriptionQuoteRequest):
    start_date: datetime
    time_slot: str = Field(..., min_length=1)
    delivery_address_id: str = Field(..., min_length=1)


class UpdateSubscriptionStatusRequest(BaseModel):
    status: str = Field(..., min_length=1)


class ExtendSubscriptionRequest(BaseModel):
    days: int


class ProrationResponse(BaseModel):
    magnitude: int
    change_type: str
    units_consumed: int | None


class ChargeResponse(BaseModel):
    charge_amount: int
    wallet_credit: int
    extra_charge: int
    used_full_price_fallback: bool


class SubscriptionResponse(BaseModel):
    id: str
    plan_type: str
    dietary_preference: str
    price: int | None
    person_count: int | None
    meals_per_month: int | None
    start_date: datetime | None
    end_date: datetime | None
    status: str
    delivery_address_id: str | None
    time_slot: str | None
    wallet_credit_applied: int | None
    extra_charge_applied: int | None
    payment_id: str | None
    version: int


class SubscriptionStateResponse(BaseModel):
    subscription: SubscriptionResponse
    status: str
    end_date: date | None
    days_remaining: int


class SubscriptionQuoteResponse(BaseModel):
    action: str
    subscription_id: str | None
    subscription_status: str | None
    plan_id: str
    plan_price: int
    proration: ProrationResponse | None
    charge: ChargeResponse


class SubscriptionSettleResponse(BaseModel):
    state: str
    action: str
    subscription: SubscriptionResponse | None
    proration: ProrationResponse | None
    charge: ChargeResponse
    payment_id: str | None = None
    failure_reason: str | None = None
    retryable: bool = False
