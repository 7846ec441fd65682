from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo

from mealsub.domain.entities.subscription import (
    ResolvedStatus,
    Subscription,
    SubscriptionState,
    is_cancelled,
)


DEFAULT_CYCLE_DAYS = 30


def to_business_date(value: datetime, tz: tzinfo) -> date:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).date()


def derive_end_date(subscription: Subscription) -> datetime | None:
    if subscription.end_date is not None:
        return subscription.end_date
    if subscription.start_date is None:
        return None
    cycle_days = subscription.meals_per_month or DEFAULT_CYCLE_DAYS
    return subscription.start_date + timedelta(days=cycle_days)


def resolve_status(
    *,
    start_date: date | None,
    end_date: date | None,
    cancelled: bool,
    today: date,
) -> ResolvedStatus:
    if cancelled:
        return "cancelled"
    if start_date is None:
        return "inactive"
    if today == start_date:
        return "active"
    if end_date is not None and today >= end_date:
        return "completed"
    if start_date <= today:
        return "active"
    return "inactive"


def resolve_subscription_state(
    subscription: Subscription,
    *,
    now: datetime,
    tz: tzinfo,
) -> SubscriptionState:
    today = to_business_date(now, tz)
    start = to_business_date(subscription.start_date, tz) if subscription.start_date else None
    end_at = derive_end_date(subscription)
    end = to_business_date(end_at, tz) if end_at else None

    status = resolve_status(
        start_date=start,
        end_date=end,
        cancelled=is_cancelled(subscription),
        today=today,
    )
    days_remaining = (end - today).days if status == "active" and end is not None else 0
    return SubscriptionState(
        subscription=subscription,
        status=status,
        end_date=end,
        days_remaining=max(days_remaining, 0),
    )


def resolve_subscription_states(
    subscriptions: list[Subscription],
    *,
    now: datetime,
    tz: tzinfo,
) -> list[SubscriptionState]:
    return [resolve_subscription_state(item, now=now, tz=tz) for item in subscriptions]
