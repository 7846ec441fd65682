from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from mealsub.api.deps import get_list_subscription_plans_use_case
from mealsub.api.schemas.plans import SubscriptionPlanGroupResponse
from mealsub.application.dto.plans import ListPlansInput
from mealsub.application.use_cases.list_subscription_plans import ListSubscriptionPlansUseCase
from mealsub.domain.exceptions import SubscriptionValidationError


router = APIRouter()


@router.get("/v1/subscription-plans", response_model=list[SubscriptionPlanGroupResponse])
def list_subscription_plans(
    dietary_preference: str | None = None,
    use_case: ListSubscriptionPlansUseCase = Depends(get_list_subscription_plans_use_case),
):
    try:
        output = use_case.execute(ListPlansInput(dietary_preference=dietary_preference))
    except SubscriptionValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return [
        SubscriptionPlanGroupResponse(
            dietary_preference=group.dietary_preference,
            plans=[
                {
                    "id": plan.id,
                    "name": plan.name,
                    "plan_type": plan.plan_type,
                    "dietary_preference": plan.dietary_preference,
                    "price": plan.price or 0,
                    "duration": plan.duration or 0,
                    "features": list(plan.features),
                }
                for plan in group.plans
            ],
        )
        for group in output.groups
    ]
