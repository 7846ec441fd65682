from __future__ import annotations

from typing import Protocol

from mealsub.domain.entities.user import DeliveryAddress


class AddressPort(Protocol):
    def get_address(self, *, address_id: str, user_id: str) -> DeliveryAddress | None:
        ...
