from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from mealsub.api.deps import (
    get_extend_subscription_use_case,
    get_update_subscription_status_use_case,
    require_staff,
)
from mealsub.api.routers.subscriptions import subscription_response
from mealsub.api.schemas.subscriptions import (
    ExtendSubscriptionRequest,
    SubscriptionResponse,
    UpdateSubscriptionStatusRequest,
)
from mealsub.application.dto.subscriptions import ExtendSubscriptionInput, UpdateSubscriptionStatusInput
from mealsub.application.use_cases.extend_subscription import ExtendSubscriptionUseCase
from mealsub.application.use_cases.update_subscription_status import UpdateSubscriptionStatusUseCase
from mealsub.domain.entities.user import User
from mealsub.domain.exceptions import (
    SubscriptionNotFoundError,
    SubscriptionStoreError,
    SubscriptionValidationError,
)


router = APIRouter()


@router.patch("/v1/admin/subscriptions/{subscription_id}/status", response_model=SubscriptionResponse)
def update_subscription_status(
    subscription_id: UUID,
    req: UpdateSubscriptionStatusRequest,
    _staff: User = Depends(require_staff),
    use_case: UpdateSubscriptionStatusUseCase = Depends(get_update_subscription_status_use_case),
):
    try:
        subscription = use_case.execute(
            UpdateSubscriptionStatusInput(subscription_id=str(subscription_id), status=req.status)
        )
    except SubscriptionValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SubscriptionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SubscriptionStoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return subscription_response(subscription)


@router.patch("/v1/admin/subscriptions/{subscription_id}/extend", response_model=SubscriptionResponse)
def extend_subscription(
    subscription_id: UUID,
    req: ExtendSubscriptionRequest,
    _staff: User = Depends(require_staff),
    use_case: ExtendSubscriptionUseCase = Depends(get_extend_subscription_use_case),
):
    try:
        subscription = use_case.execute(
            ExtendSubscriptionInput(subscription_id=str(subscription_id), days=req.days)
        )
    except SubscriptionValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SubscriptionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SubscriptionStoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return subscription_response(subscription)
