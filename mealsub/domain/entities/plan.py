from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


PlanType = Literal["basic", "premium", "family"]
DietaryPreference = Literal["veg", "veg_with_egg", "nonveg"]

PLAN_TYPES: tuple[PlanType, ...] = ("basic", "premium", "family")
DIETARY_PREFERENCES: tuple[DietaryPreference, ...] = ("veg", "veg_with_egg", "nonveg")


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    plan_type: PlanType
    dietary_preference: DietaryPreference
    price: int | None
    duration: int | None
    features: tuple[str, ...] = field(default_factory=tuple)
    is_active: bool = True


@dataclass(frozen=True)
class PlanGroup:
    dietary_preference: DietaryPreference
    plans: tuple[Plan, ...]
