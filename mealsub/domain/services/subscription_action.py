from __future__ import annotations

from mealsub.domain.entities.settlement import ActionDecision
from mealsub.domain.entities.subscription import SubscriptionState, is_current_status


NO_ACTION = ActionDecision(action="NONE", subscription=None, subscription_status=None)


def find_current_subscription(states: list[SubscriptionState]) -> SubscriptionState | None:
    # First match in list order wins; callers must not pre-sort by recency.
    for state in states:
        if is_current_status(state.status):
            return state
    return None


def find_completed_subscription(states: list[SubscriptionState]) -> SubscriptionState | None:
    for state in states:
        if state.status == "completed":
            return state
    return None


def classify_action(
    states: list[SubscriptionState],
    *,
    dietary_preference: str,
    plan_type: str,
) -> ActionDecision:
    current = find_current_subscription(states)
    if current is not None:
        subscription = current.subscription
        same_diet = subscription.dietary_preference == dietary_preference
        same_plan = subscription.plan_type == plan_type
        return ActionDecision(
            action="MODIFY" if same_diet and same_plan else "UPGRADE",
            subscription=subscription,
            subscription_status=current.status,
        )

    completed = find_completed_subscription(states)
    if completed is not None:
        return ActionDecision(
            action="RENEW",
            subscription=completed.subscription,
            subscription_status=completed.status,
        )

    return NO_ACTION
