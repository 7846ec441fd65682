from __future__ import annotations


from fastapi import APIRouter, Depends, HTTPException

from mealsub.api.deps import (
    get_current_user,
    get_list_subscriptions_use_case,
    get_quote_subscription_change_use_case,
    get_settle_subscription_change_use_case,
)
from mealsub.api.schemas.subscriptions import (
    ChargeResponse,
    ProrationResponse,
    SubscriptionQuoteRequest,
    SubscriptionQuoteResponse,
    SubscriptionResponse,
    SubscriptionSettleRequest,
    SubscriptionSettleResponse,
    SubscriptionStateResponse,
)
from mealsub.application.dto.subscriptions import SubscriptionQuoteInput, SubscriptionSelectionInput
from mealsub.application.use_cases.list_subscriptions import ListSubscriptionsUseCase
from mealsub.application.use_cases.quote_subscription_change import QuoteSubscriptionChangeUseCase
from mealsub.application.use_cases.settle_subscription_change import SettleSubscriptionChangeUseCase
from mealsub.domain.entities.proration import ProrationResult
from mealsub.domain.entities.settlement import SettlementCharge
from mealsub.domain.entities.subscription import Subscription
from mealsub.domain.entities.user import User
from mealsub.domain.exceptions import (
    PlanNotFoundError,
    SubscriptionBusyError,
    SubscriptionValidationError,
)


router = APIRouter()


def subscription_response(subscription: Subscription) -> SubscriptionResponse:
    return SubscriptionResponse(
        id=subscription.id,
        plan_type=subscription.plan_type,
        dietary_preference=subscription.dietary_preference,
        price=subscription.price,
        person_count=subscription.person_count,
        meals_per_month=subscription.meals_per_month,
        start_date=subscription.start_date,
        end_date=subscription.end_date,
        status=subscription.status,
        delivery_address_id=subscription.delivery_address_id,
        time_slot=subscription.time_slot,
        wallet_credit_applied=subscription.wallet_credit_applied,
        extra_charge_applied=subscription.extra_charge_applied,
        payment_id=subscription.payment_id,
        version=subscription.version,
    )


def _proration_response(proration: ProrationResult | None) -> ProrationResponse | None:
    if proration is None:
        return None
    return ProrationResponse(
        magnitude=proration.magnitude,
        change_type=proration.change_type,
        units_consumed=proration.units_consumed,
    )


def _charge_response(charge: SettlementCharge) -> ChargeResponse:
    return ChargeResponse(
        charge_amount=charge.charge_amount,
        wallet_credit=charge.wallet_credit,
        extra_charge=charge.extra_charge,
        used_full_price_fallback=charge.used_full_price_fallback,
    )


@router.get("/v1/subscriptions", response_model=list[SubscriptionStateResponse])
def list_subscriptions(
    current_user: User = Depends(get_current_user),
    use_case: ListSubscriptionsUseCase = Depends(get_list_subscriptions_use_case),
):
    output = use_case.execute(user_id=current_user.id)
    return [
        SubscriptionStateResponse(
            subscription=subscription_response(item.subscription),
            status=item.status,
            end_date=item.end_date,
            days_remaining=item.days_remaining,
        )
        for item in output.items
    ]


@router.post("/v1/subscriptions/quote", response_model=SubscriptionQuoteResponse)
def quote_subscription_change(
    req: SubscriptionQuoteRequest,
    current_user: User = Depends(get_current_user),
    use_case: QuoteSubscriptionChangeUseCase = Depends(get_quote_subscription_change_use_case),
):
    try:
        output = use_case.execute(
            SubscriptionQuoteInput(
                user_id=current_user.id,
                dietary_preference=req.dietary_preference,
                plan_type=req.plan_type,
                person_count=req.person_count,
            )
        )
    except PlanNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SubscriptionValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return SubscriptionQuoteResponse(
        action=output.action,
        subscription_id=output.subscription_id,
        subscription_status=output.subscription_status,
        plan_id=output.plan.id,
        plan_price=output.plan.price or 0,
        proration=_proration_response(output.proration),
        charge=_charge_response(output.charge),
    )


@router.post("/v1/subscriptions/settle", response_model=SubscriptionSettleResponse)
async def settle_subscription_change(
    req: SubscriptionSettleRequest,
    current_user: User = Depends(get_current_user),
    use_case: SettleSubscriptionChangeUseCase = Depends(get_settle_subscription_change_use_case),
):
    try:
        output = await use_case.execute(
            SubscriptionSelectionInput(
                user_id=current_user.id,
                dietary_preference=req.dietary_preference,
                plan_type=req.plan_type,
                person_count=req.person_count,
                start_date=req.start_date,
                time_slot=req.time_slot,
                delivery_address_id=req.delivery_address_id,
                payment_customer_id=current_user.stripe_customer_id,
            )
        )
    except PlanNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SubscriptionValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SubscriptionBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    if output.state == "payment_failed":
        raise HTTPException(status_code=402, detail=output.failure_reason or "Payment failed.")
    if output.state == "store_failed":
        raise HTTPException(status_code=502, detail="Subscription could not be saved. Please retry.")
    if output.state == "reconciliation_required":
        payment_id = output.payment_proof.payment_id if output.payment_proof else None
        raise HTTPException(
            status_code=500,
            detail=(
                f"Payment {payment_id} may have been captured but the subscription was not saved. "
                f"Support has been notified (incident {output.incident_id})."
            ),
        )

    return SubscriptionSettleResponse(
        state=output.state,
        action=output.action,
        subscription=subscription_response(output.subscription) if output.subscription else None,
        proration=_proration_response(output.proration),
        charge=_charge_response(output.charge),
        payment_id=output.payment_proof.payment_id if output.payment_proof else None,
        failure_reason=output.failure_reason,
        retryable=output.retryable,
    )
