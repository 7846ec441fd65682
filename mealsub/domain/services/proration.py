"""Prorated price delta when switching a subscription to another plan.

For a plan that already started, the unused value of the old plan is
``old_price - old_daily_rate * days_used`` and the cost basis of the new plan
is ``new_price - new_daily_rate * days_used``; the delta is their difference.
The new plan's days are discounted at the new plan's own daily rate.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from mealsub.domain.entities.plan import Plan
from mealsub.domain.entities.proration import INVALID_PLAN_DATA, ProrationResult
from mealsub.domain.entities.subscription import Subscription


SECONDS_PER_DAY = 86400
MINOR_UNIT = Decimal("1")


def _positive_decimal(value: object) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not number.is_finite() or number <= 0:
        return None
    return number


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def elapsed_days(*, start_date: datetime, now: datetime) -> int:
    elapsed = (_aware(now) - _aware(start_date)).total_seconds()
    return int(elapsed // SECONDS_PER_DAY)


def units_consumed(*, start_date: datetime, now: datetime) -> int:
    return max(0, elapsed_days(start_date=start_date, now=now))


def classify_net_difference(net_difference: Decimal, *, units: int | None) -> ProrationResult:
    magnitude = int(abs(net_difference).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP))
    if magnitude == 0:
        return ProrationResult(magnitude=0, change_type="noChange", units_consumed=units)
    change_type = "priceUp" if net_difference > 0 else "priceDown"
    return ProrationResult(magnitude=magnitude, change_type=change_type, units_consumed=units)


def calculate_proration(
    *,
    previous: Subscription,
    previous_status: str,
    selected_plan: Plan,
    selected_person_count: int,
    now: datetime,
) -> ProrationResult:
    previous_price = _positive_decimal(previous.price)
    selected_price = _positive_decimal(selected_plan.price)
    selected_duration = _positive_decimal(selected_plan.duration)
    if previous_price is None or selected_price is None or selected_duration is None:
        return INVALID_PLAN_DATA

    if previous_status == "inactive":
        return classify_net_difference(selected_price - previous_price, units=0)

    if previous_status != "active":
        return INVALID_PLAN_DATA

    meals_per_month = _positive_decimal(previous.meals_per_month)
    if meals_per_month is None or previous.start_date is None:
        return INVALID_PLAN_DATA
    new_person_count = _positive_decimal(selected_person_count)
    if new_person_count is None:
        return INVALID_PLAN_DATA
    old_person_count = _positive_decimal(previous.person_count) or Decimal("1")

    units = units_consumed(start_date=previous.start_date, now=now)

    cost_per_unit_old = previous_price * old_person_count / meals_per_month
    consumed_value = cost_per_unit_old * units
    remaining_value = previous_price - consumed_value

    cost_per_unit_new = selected_price * new_person_count / selected_duration
    new_plan_actual_price = selected_price - cost_per_unit_new * units

    return classify_net_difference(new_plan_actual_price - remaining_value, units=units)
