from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from mealsub.domain.exceptions import SubscriptionBusyError


class SettlementLocks:
    """Per-key advisory locks for one event loop.

    A second holder is rejected instead of queued, so a customer cannot
    start two settlements of the same subscriptions at once.
    """

    def __init__(self) -> None:
        self._held: set[str] = set()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        if key in self._held:
            raise SubscriptionBusyError("A settlement for this subscription is already in progress.")
        self._held.add(key)
        try:
            yield
        finally:
            self._held.discard(key)


def user_settlement_key(user_id: str) -> str:
    return f"user:{user_id}"
