from __future__ import annotations

from typing import Protocol

from mealsub.domain.entities.plan import Plan


class PlanCatalogPort(Protocol):
    def list_plans(self, *, dietary_preference: str) -> list[Plan]:
        ...

    def list_all_plans(self) -> list[Plan]:
        ...
