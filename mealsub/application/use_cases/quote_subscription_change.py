from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Callable

from mealsub.application.dto.subscriptions import SubscriptionQuoteInput, SubscriptionQuoteOutput
from mealsub.application.ports.plan_catalog_port import PlanCatalogPort
from mealsub.application.ports.subscription_store_port import SubscriptionStorePort
from mealsub.domain.services.proration import calculate_proration
from mealsub.domain.services.settlement import plan_settlement_charge
from mealsub.domain.services.subscription_action import classify_action
from mealsub.domain.services.subscription_status import resolve_subscription_states

from .subscription_common import select_plan, utcnow, validate_plan_selection


class QuoteSubscriptionChangeUseCase:
    def __init__(
        self,
        *,
        plan_catalog_port: PlanCatalogPort,
        subscription_store_port: SubscriptionStorePort,
        business_tz: tzinfo,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._plan_catalog_port = plan_catalog_port
        self._subscription_store_port = subscription_store_port
        self._business_tz = business_tz
        self._clock = clock

    def execute(self, command: SubscriptionQuoteInput) -> SubscriptionQuoteOutput:
        validate_plan_selection(
            dietary_preference=command.dietary_preference,
            plan_type=command.plan_type,
            person_count=command.person_count,
        )
        plan = select_plan(
            plan_catalog_port=self._plan_catalog_port,
            dietary_preference=command.dietary_preference,
            plan_type=command.plan_type,
        )

        now = self._clock()
        states = resolve_subscription_states(
            self._subscription_store_port.list_subscriptions(user_id=command.user_id),
            now=now,
            tz=self._business_tz,
        )
        decision = classify_action(
            states,
            dietary_preference=command.dietary_preference,
            plan_type=command.plan_type,
        )

        proration = None
        if decision.action in {"UPGRADE", "RENEW"} and decision.subscription is not None:
            proration = calculate_proration(
                previous=decision.subscription,
                previous_status=decision.subscription_status or "",
                selected_plan=plan,
                selected_person_count=command.person_count,
                now=now,
            )

        charge = plan_settlement_charge(
            action=decision.action,
            proration=proration,
            selected_plan=plan,
            person_count=command.person_count,
        )
        return SubscriptionQuoteOutput(
            action=decision.action,
            subscription_id=decision.subscription.id if decision.subscription else None,
            subscription_status=decision.subscription_status,
            plan=plan,
            proration=proration,
            charge=charge,
        )
