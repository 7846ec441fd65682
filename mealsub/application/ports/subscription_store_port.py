from __future__ import annotations

from datetime import datetime
from typing import Protocol

from mealsub.application.dto.subscriptions import (
    NewSubscription,
    SubscriptionModification,
    SubscriptionPatch,
)
from mealsub.domain.entities.settlement import SettlementIncident
from mealsub.domain.entities.subscription import Subscription


class SubscriptionStorePort(Protocol):
    def list_subscriptions(self, *, user_id: str) -> list[Subscription]:
        ...

    def get_subscription(self, *, subscription_id: str) -> Subscription | None:
        ...

    def create_subscription(self, *, payload: NewSubscription, now: datetime) -> Subscription:
        ...

    def patch_subscription(
        self,
        *,
        subscription_id: str,
        payload: SubscriptionPatch,
        now: datetime,
    ) -> Subscription:
        ...

    def modify_subscription(
        self,
        *,
        subscription_id: str,
        payload: SubscriptionModification,
        now: datetime,
    ) -> Subscription:
        ...

    def update_subscription_status(
        self,
        *,
        subscription_id: str,
        status: str,
        now: datetime,
    ) -> Subscription:
        ...

    def extend_subscription(
        self,
        *,
        subscription_id: str,
        days: int,
        now: datetime,
    ) -> Subscription:
        ...


class SettlementIncidentPort(Protocol):
    def record_settlement_incident(self, *, incident: SettlementIncident) -> None:
        ...
