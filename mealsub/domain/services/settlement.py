from __future__ import annotations

from mealsub.domain.entities.plan import Plan
from mealsub.domain.entities.proration import ProrationResult
from mealsub.domain.entities.settlement import SettlementCharge, SubscriptionAction


NO_CHARGE = SettlementCharge(charge_amount=0, wallet_credit=0, extra_charge=0, used_full_price_fallback=False)


def plan_settlement_charge(
    *,
    action: SubscriptionAction,
    proration: ProrationResult | None,
    selected_plan: Plan,
    person_count: int,
) -> SettlementCharge:
    plan_price = int(selected_plan.price or 0)

    if action == "MODIFY":
        return NO_CHARGE

    if action == "NONE":
        total = plan_price * person_count
        return SettlementCharge(
            charge_amount=total,
            wallet_credit=0,
            extra_charge=0,
            used_full_price_fallback=False,
        )

    if proration is None or proration.change_type == "invalidPlanData":
        return SettlementCharge(
            charge_amount=plan_price,
            wallet_credit=0,
            extra_charge=0,
            used_full_price_fallback=True,
        )

    if proration.change_type == "priceUp":
        return SettlementCharge(
            charge_amount=proration.magnitude,
            wallet_credit=0,
            extra_charge=proration.magnitude,
            used_full_price_fallback=False,
        )

    if proration.change_type == "priceDown":
        return SettlementCharge(
            charge_amount=0,
            wallet_credit=proration.magnitude,
            extra_charge=0,
            used_full_price_fallback=False,
        )

    return NO_CHARGE
