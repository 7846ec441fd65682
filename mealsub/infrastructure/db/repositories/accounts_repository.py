from __future__ import annotations

from sqlalchemy import text

from mealsub.application.ports.address_port import AddressPort
from mealsub.application.ports.user_port import UserPort
from mealsub.domain.entities.user import DeliveryAddress, User
from mealsub.infrastructure.db.mappers.subscriptions_mapper import (
    map_row_to_delivery_address,
    map_row_to_user,
)


class SqlAccountsRepository(UserPort, AddressPort):
    def __init__(self, engine):
        self._engine = engine

    def get_user_by_id(self, *, user_id: str) -> User | None:
        sql = """
            SELECT id, name, email, is_active, role, stripe_customer_id, created_at, updated_at
            FROM public.users
            WHERE id = :user_id
            LIMIT 1
        """
        with self._engine.connect() as conn:
            row = conn.execute(text(sql), {"user_id": user_id}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def get_address(self, *, address_id: str, user_id: str) -> DeliveryAddress | None:
        sql = """
            SELECT id, user_id, label, address_line, pincode
            FROM public.delivery_addresses
            WHERE id = :address_id
              AND user_id = :user_id
            LIMIT 1
        """
        with self._engine.connect() as conn:
            row = conn.execute(
                text(sql),
                {
                    "address_id": address_id,
                    "user_id": user_id,
                },
            ).mappings().first()
        if row is None:
            return None
        return map_row_to_delivery_address(row)
