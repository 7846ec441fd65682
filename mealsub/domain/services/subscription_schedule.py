from __future__ import annotations

from datetime import datetime, timedelta

from mealsub.domain.entities.subscription import Subscription
from mealsub.domain.exceptions import SubscriptionValidationError
from mealsub.domain.services.proration import elapsed_days
from mealsub.domain.services.subscription_status import derive_end_date


def rescheduled_end_date(
    *,
    subscription: Subscription,
    resume_date: datetime,
    now: datetime,
) -> datetime:
    plan_duration = subscription.meals_per_month
    if not isinstance(plan_duration, int) or isinstance(plan_duration, bool) or plan_duration <= 0:
        raise SubscriptionValidationError("Invalid or missing plan duration for the subscription.")

    delivered_days = 0
    if subscription.start_date is not None:
        # The start day itself counts as delivered.
        delivered_days = max(0, elapsed_days(start_date=subscription.start_date, now=now) + 1)

    remaining_days = plan_duration - delivered_days
    if remaining_days <= 0:
        raise SubscriptionValidationError("No remaining days in the subscription plan.")

    if remaining_days > 1:
        return resume_date + timedelta(days=plan_duration - 1)
    return resume_date + timedelta(days=remaining_days - 1)


def extended_end_date(*, subscription: Subscription, days: int) -> datetime:
    if days <= 0:
        raise SubscriptionValidationError("days must be a positive integer.")
    end_date = derive_end_date(subscription)
    if end_date is None:
        raise SubscriptionValidationError("Subscription has no start date to extend from.")
    return end_date + timedelta(days=days)
