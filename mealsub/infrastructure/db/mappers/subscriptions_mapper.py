from __future__ import annotations

import json
from typing import Any, Mapping

from mealsub.domain.entities.plan import Plan
from mealsub.domain.entities.subscription import Subscription
from mealsub.domain.entities.user import DeliveryAddress, User


def _as_str(value: Any) -> str:
    return str(value)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    return int(value)


def _features(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = json.loads(value)
    return tuple(str(item) for item in value)


def map_row_to_user(row: Mapping[str, Any]) -> User:
    return User(
        id=_as_str(row["id"]),
        name=row["name"],
        email=row["email"],
        is_active=bool(row["is_active"]),
        role=row.get("role") or "customer",
        stripe_customer_id=row.get("stripe_customer_id"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def map_row_to_delivery_address(row: Mapping[str, Any]) -> DeliveryAddress:
    return DeliveryAddress(
        id=_as_str(row["id"]),
        user_id=_as_str(row["user_id"]),
        label=row["label"],
        address_line=row["address_line"],
        pincode=row.get("pincode"),
    )


def map_row_to_plan(row: Mapping[str, Any]) -> Plan:
    return Plan(
        id=_as_str(row["id"]),
        name=row["name"],
        plan_type=row["plan_type"],
        dietary_preference=row["dietary_preference"],
        price=_optional_int(row.get("price")),
        duration=_optional_int(row.get("duration")),
        features=_features(row.get("features")),
        is_active=bool(row.get("is_active", True)),
    )


def map_row_to_subscription(row: Mapping[str, Any]) -> Subscription:
    return Subscription(
        id=_as_str(row["id"]),
        user_id=_as_str(row["user_id"]),
        plan_type=row["plan_type"],
        dietary_preference=row["dietary_preference"],
        price=_optional_int(row.get("price")),
        person_count=_optional_int(row.get("person_count")),
        meals_per_month=_optional_int(row.get("meals_per_month")),
        start_date=row.get("start_date"),
        end_date=row.get("end_date"),
        status=row["status"],
        delivery_address_id=_optional_str(row.get("delivery_address_id")),
        time_slot=row.get("time_slot"),
        wallet_credit_applied=_optional_int(row.get("wallet_credit_applied")),
        extra_charge_applied=_optional_int(row.get("extra_charge_applied")),
        payment_id=row.get("payment_id"),
        payment_order_reference=row.get("payment_order_reference"),
        payment_signature=row.get("payment_signature"),
        version=int(row.get("version") or 1),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
