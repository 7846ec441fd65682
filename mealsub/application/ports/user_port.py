from __future__ import annotations

from typing import Protocol

from mealsub.domain.entities.user import User


class UserPort(Protocol):
    def get_user_by_id(self, *, user_id: str) -> User | None:
        ...
