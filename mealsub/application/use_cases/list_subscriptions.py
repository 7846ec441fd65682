from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Callable

from mealsub.application.dto.subscriptions import ListSubscriptionsOutput
from mealsub.application.ports.subscription_store_port import SubscriptionStorePort
from mealsub.domain.services.subscription_status import resolve_subscription_states

from .subscription_common import utcnow


class ListSubscriptionsUseCase:
    def __init__(
        self,
        *,
        subscription_store_port: SubscriptionStorePort,
        business_tz: tzinfo,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._subscription_store_port = subscription_store_port
        self._business_tz = business_tz
        self._clock = clock

    def execute(self, *, user_id: str) -> ListSubscriptionsOutput:
        subscriptions = self._subscription_store_port.list_subscriptions(user_id=user_id)
        states = resolve_subscription_states(subscriptions, now=self._clock(), tz=self._business_tz)
        return ListSubscriptionsOutput(items=states)
