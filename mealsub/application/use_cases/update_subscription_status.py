from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from mealsub.application.dto.subscriptions import UpdateSubscriptionStatusInput
from mealsub.application.ports.subscription_store_port import SubscriptionStorePort
from mealsub.domain.entities.subscription import SUBSCRIPTION_STATUSES, Subscription
from mealsub.domain.exceptions import SubscriptionNotFoundError, SubscriptionValidationError

from .subscription_common import utcnow


logger = logging.getLogger(__name__)


class UpdateSubscriptionStatusUseCase:
    def __init__(
        self,
        *,
        subscription_store_port: SubscriptionStorePort,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._subscription_store_port = subscription_store_port
        self._clock = clock

    def execute(self, command: UpdateSubscriptionStatusInput) -> Subscription:
        if command.status not in SUBSCRIPTION_STATUSES:
            raise SubscriptionValidationError(
                "status must be one of: " + ", ".join(SUBSCRIPTION_STATUSES) + "."
            )
        current = self._subscription_store_port.get_subscription(subscription_id=command.subscription_id)
        if current is None:
            raise SubscriptionNotFoundError("Subscription not found.")

        updated = self._subscription_store_port.update_subscription_status(
            subscription_id=current.id,
            status=command.status,
            now=self._clock(),
        )
        logger.info(
            "admin_subscriptions: status_updated subscription=%s from=%s to=%s",
            current.id,
            current.status,
            updated.status,
        )
        return updated
