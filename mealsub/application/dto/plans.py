from __future__ import annotations

from dataclasses import dataclass

from mealsub.domain.entities.plan import PlanGroup


@dataclass(frozen=True)
class ListPlansInput:
    dietary_preference: str | None


@dataclass(frozen=True)
class ListPlansOutput:
    groups: list[PlanGroup]
