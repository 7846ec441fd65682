from __future__ import annotations

from mealsub.application.dto.plans import ListPlansInput, ListPlansOutput
from mealsub.application.ports.plan_catalog_port import PlanCatalogPort
from mealsub.domain.entities.plan import DIETARY_PREFERENCES, PLAN_TYPES, Plan, PlanGroup

from .subscription_common import validate_dietary_preference


def _ordered(plans: list[Plan]) -> tuple[Plan, ...]:
    ordered: list[Plan] = []
    for plan_type in PLAN_TYPES:
        match = next((plan for plan in plans if plan.plan_type == plan_type), None)
        if match is not None:
            ordered.append(match)
    return tuple(ordered)


class ListSubscriptionPlansUseCase:
    def __init__(self, *, plan_catalog_port: PlanCatalogPort):
        self._plan_catalog_port = plan_catalog_port

    def execute(self, command: ListPlansInput) -> ListPlansOutput:
        if command.dietary_preference is not None:
            validate_dietary_preference(command.dietary_preference)
            plans = self._plan_catalog_port.list_plans(dietary_preference=command.dietary_preference)
            groups = [PlanGroup(dietary_preference=command.dietary_preference, plans=_ordered(plans))]
        else:
            plans = self._plan_catalog_port.list_all_plans()
            groups = [
                PlanGroup(
                    dietary_preference=diet,
                    plans=_ordered([plan for plan in plans if plan.dietary_preference == diet]),
                )
                for diet in DIETARY_PREFERENCES
            ]

        return ListPlansOutput(groups=[group for group in groups if group.plans])
