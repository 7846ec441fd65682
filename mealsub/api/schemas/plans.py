from __future__ import annotations

from pydantic import BaseModel


class SubscriptionPlanResponse(BaseModel):
    id: str
    name: str
    plan_type: str
    dietary_preference: str
    price: int
    duration: int
    features: list[str]


class SubscriptionPlanGroupResponse(BaseModel):
    dietary_preference: str
    plans: list[SubscriptionPlanResponse]
