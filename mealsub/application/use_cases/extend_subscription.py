from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from mealsub.application.dto.subscriptions import ExtendSubscriptionInput
from mealsub.application.ports.subscription_store_port import SubscriptionStorePort
from mealsub.domain.entities.subscription import Subscription
from mealsub.domain.exceptions import SubscriptionNotFoundError
from mealsub.domain.services.subscription_schedule import extended_end_date

from .subscription_common import utcnow


logger = logging.getLogger(__name__)


class ExtendSubscriptionUseCase:
    def __init__(
        self,
        *,
        subscription_store_port: SubscriptionStorePort,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._subscription_store_port = subscription_store_port
        self._clock = clock

    def execute(self, command: ExtendSubscriptionInput) -> Subscription:
        current = self._subscription_store_port.get_subscription(subscription_id=command.subscription_id)
        if current is None:
            raise SubscriptionNotFoundError("Subscription not found.")

        # Validates days and that an end date can be derived before touching the store.
        new_end_date = extended_end_date(subscription=current, days=command.days)

        updated = self._subscription_store_port.extend_subscription(
            subscription_id=current.id,
            days=command.days,
            now=self._clock(),
        )
        logger.info(
            "admin_subscriptions: extended subscription=%s days=%s end_date=%s",
            current.id,
            command.days,
            updated.end_date or new_end_date,
        )
        return updated
