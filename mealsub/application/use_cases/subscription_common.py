from __future__ import annotations

from datetime import datetime, timezone

from mealsub.application.ports.plan_catalog_port import PlanCatalogPort
from mealsub.domain.entities.plan import DIETARY_PREFERENCES, PLAN_TYPES, Plan
from mealsub.domain.entities.subscription import MAX_PERSON_COUNT, MIN_PERSON_COUNT
from mealsub.domain.exceptions import PlanNotFoundError, SubscriptionValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_dietary_preference(dietary_preference: str) -> None:
    if dietary_preference not in DIETARY_PREFERENCES:
        raise SubscriptionValidationError(
            "dietary_preference must be one of: veg, veg_with_egg, nonveg."
        )


def validate_plan_selection(*, dietary_preference: str, plan_type: str, person_count: int) -> None:
    validate_dietary_preference(dietary_preference)
    if plan_type not in PLAN_TYPES:
        raise SubscriptionValidationError("plan_type must be one of: basic, premium, family.")
    if person_count < MIN_PERSON_COUNT or person_count > MAX_PERSON_COUNT:
        raise SubscriptionValidationError(
            f"person_count must be between {MIN_PERSON_COUNT} and {MAX_PERSON_COUNT}."
        )


def select_plan(
    *,
    plan_catalog_port: PlanCatalogPort,
    dietary_preference: str,
    plan_type: str,
) -> Plan:
    plans = plan_catalog_port.list_plans(dietary_preference=dietary_preference)
    plan = next((item for item in plans if item.plan_type == plan_type), None)
    if plan is None:
        raise PlanNotFoundError(
            f"No {plan_type} plan is offered for dietary preference {dietary_preference}."
        )
    if not isinstance(plan.price, int) or plan.price <= 0:
        raise SubscriptionValidationError("Selected plan has no valid price.")
    if not isinstance(plan.duration, int) or plan.duration <= 0:
        raise SubscriptionValidationError("Selected plan has no valid duration.")
    return plan
