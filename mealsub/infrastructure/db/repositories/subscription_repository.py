from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from mealsub.application.dto.subscriptions import (
    NewSubscription,
    SubscriptionModification,
    SubscriptionPatch,
)
from mealsub.application.ports.subscription_store_port import (
    SettlementIncidentPort,
    SubscriptionStorePort,
)
from mealsub.domain.entities.settlement import SettlementIncident
from mealsub.domain.entities.subscription import Subscription
from mealsub.domain.exceptions import (
    SubscriptionConflictError,
    SubscriptionNotFoundError,
    SubscriptionStoreError,
)
from mealsub.domain.services.subscription_schedule import extended_end_date
from mealsub.infrastructure.db.mappers.subscriptions_mapper import map_row_to_subscription


logger = logging.getLogger(__name__)

_SUBSCRIPTION_COLUMNS = """
    id, user_id, plan_type, dietary_preference, price, person_count, meals_per_month,
    start_date, end_date, status, delivery_address_id, time_slot,
    wallet_credit_applied, extra_charge_applied,
    payment_id, payment_order_reference, payment_signature,
    version, created_at, updated_at
"""


class SqlSubscriptionRepository(SubscriptionStorePort, SettlementIncidentPort):
    def __init__(self, engine):
        self._engine = engine

    def list_subscriptions(self, *, user_id: str) -> list[Subscription]:
        sql = f"""
            SELECT {_SUBSCRIPTION_COLUMNS}
            FROM public.subscriptions
            WHERE user_id = :user_id
            ORDER BY created_at DESC, id
        """
        with self._engine.connect() as conn:
            rows = conn.execute(text(sql), {"user_id": user_id}).mappings().all()
        return [map_row_to_subscription(row) for row in rows]

    def get_subscription(self, *, subscription_id: str) -> Subscription | None:
        sql = f"""
            SELECT {_SUBSCRIPTION_COLUMNS}
            FROM public.subscriptions
            WHERE id = :subscription_id
            LIMIT 1
        """
        with self._engine.connect() as conn:
            row = conn.execute(text(sql), {"subscription_id": subscription_id}).mappings().first()
        if row is None:
            return None
        return map_row_to_subscription(row)

    def create_subscription(self, *, payload: NewSubscription, now: datetime) -> Subscription:
        sql = f"""
            INSERT INTO public.subscriptions (
                id, user_id, plan_type, dietary_preference, price, person_count, meals_per_month,
                start_date, end_date, status, delivery_address_id, time_slot,
                payment_id, payment_order_reference, payment_signature,
                version, created_at, updated_at
            ) VALUES (
                :id, :user_id, :plan_type, :dietary_preference, :price, :person_count, :meals_per_month,
                :start_date, :end_date, 'active', :delivery_address_id, :time_slot,
                :payment_id, :payment_order_reference, :payment_signature,
                1, :now, :now
            )
            RETURNING {_SUBSCRIPTION_COLUMNS}
        """
        params = {
            "id": str(uuid4()),
            "user_id": payload.user_id,
            "plan_type": payload.plan_type,
            "dietary_preference": payload.dietary_preference,
            "price": payload.price,
            "person_count": payload.person_count,
            "meals_per_month": payload.meals_per_month,
            "start_date": payload.start_date,
            "end_date": payload.start_date + timedelta(days=payload.meals_per_month),
            "delivery_address_id": payload.delivery_address_id,
            "time_slot": payload.time_slot,
            "payment_id": payload.payment_id,
            "payment_order_reference": payload.payment_order_reference,
            "payment_signature": payload.payment_signature,
            "now": now,
        }
        try:
            with self._engine.begin() as conn:
                row = conn.execute(text(sql), params).mappings().one()
        except SQLAlchemyError as exc:
            logger.error("subscription_repository: create_failed user=%s error=%s", payload.user_id, exc)
            raise SubscriptionStoreError("Failed to create subscription.") from exc
        return map_row_to_subscription(row)

    def patch_subscription(
        self,
        *,
        subscription_id: str,
        payload: SubscriptionPatch,
        now: datetime,
    ) -> Subscription:
        sql = f"""
            UPDATE public.subscriptions
            SET plan_type = :plan_type,
                dietary_preference = :dietary_preference,
                price = :price,
                person_count = :person_count,
                meals_per_month = :meals_per_month,
                start_date = :start_date,
                end_date = :end_date,
                status = :status,
                delivery_address_id = :delivery_address_id,
                time_slot = :time_slot,
                wallet_credit_applied = :wallet_credit_applied,
                extra_charge_applied = :extra_charge_applied,
                payment_id = :payment_id,
                payment_order_reference = :payment_order_reference,
                payment_signature = :payment_signature,
                version = version + 1,
                updated_at = :now
            WHERE id = :subscription_id
              AND version = :expected_version
            RETURNING {_SUBSCRIPTION_COLUMNS}
        """
        params = {
            "subscription_id": subscription_id,
            "expected_version": payload.expected_version,
            "plan_type": payload.plan_type,
            "dietary_preference": payload.dietary_preference,
            "price": payload.price,
            "person_count": payload.person_count,
            "meals_per_month": payload.meals_per_month,
            "start_date": payload.start_date,
            "end_date": payload.start_date + timedelta(days=payload.meals_per_month),
            "status": payload.status,
            "delivery_address_id": payload.delivery_address_id,
            "time_slot": payload.time_slot,
            "wallet_credit_applied": payload.wallet_credit_applied,
            "extra_charge_applied": payload.extra_charge_applied,
            "payment_id": payload.payment_id,
            "payment_order_reference": payload.payment_order_reference,
            "payment_signature": payload.payment_signature,
            "now": now,
        }
        return self._versioned_update(sql, params, subscription_id=subscription_id, operation="patch")

    def modify_subscription(
        self,
        *,
        subscription_id: str,
        payload: SubscriptionModification,
        now: datetime,
    ) -> Subscription:
        version_clause = "AND version = :expected_version" if payload.expected_version is not None else ""
        sql = f"""
            UPDATE public.subscriptions
            SET start_date = :resume_date,
                end_date = :end_date,
                time_slot = :time_slot,
                delivery_address_id = :delivery_address_id,
                person_count = :person_count,
                version = version + 1,
                updated_at = :now
            WHERE id = :subscription_id
              {version_clause}
            RETURNING {_SUBSCRIPTION_COLUMNS}
        """
        params = {
            "subscription_id": subscription_id,
            "expected_version": payload.expected_version,
            "resume_date": payload.resume_date,
            "end_date": payload.end_date,
            "time_slot": payload.time_slot,
            "delivery_address_id": payload.delivery_address_id,
            "person_count": payload.person_count,
            "now": now,
        }
        return self._versioned_update(sql, params, subscription_id=subscription_id, operation="modify")

    def update_subscription_status(
        self,
        *,
        subscription_id: str,
        status: str,
        now: datetime,
    ) -> Subscription:
        sql = f"""
            UPDATE public.subscriptions
            SET status = :status,
                version = version + 1,
                updated_at = :now
            WHERE id = :subscription_id
            RETURNING {_SUBSCRIPTION_COLUMNS}
        """
        try:
            with self._engine.begin() as conn:
                row = conn.execute(
                    text(sql),
                    {"subscription_id": subscription_id, "status": status, "now": now},
                ).mappings().first()
        except SQLAlchemyError as exc:
            logger.error("subscription_repository: status_failed subscription=%s error=%s", subscription_id, exc)
            raise SubscriptionStoreError("Failed to update subscription status.") from exc
        if row is None:
            raise SubscriptionNotFoundError("Subscription not found.")
        return map_row_to_subscription(row)

    def extend_subscription(
        self,
        *,
        subscription_id: str,
        days: int,
        now: datetime,
    ) -> Subscription:
        select_sql = f"""
            SELECT {_SUBSCRIPTION_COLUMNS}
            FROM public.subscriptions
            WHERE id = :subscription_id
            FOR UPDATE
        """
        update_sql = f"""
            UPDATE public.subscriptions
            SET end_date = :end_date,
                version = version + 1,
                updated_at = :now
            WHERE id = :subscription_id
            RETURNING {_SUBSCRIPTION_COLUMNS}
        """
        try:
            with self._engine.begin() as conn:
                row = conn.execute(text(select_sql), {"subscription_id": subscription_id}).mappings().first()
                if row is None:
                    raise SubscriptionNotFoundError("Subscription not found.")
                end_date = extended_end_date(subscription=map_row_to_subscription(row), days=days)
                updated = conn.execute(
                    text(update_sql),
                    {"subscription_id": subscription_id, "end_date": end_date, "now": now},
                ).mappings().one()
        except SQLAlchemyError as exc:
            logger.error("subscription_repository: extend_failed subscription=%s error=%s", subscription_id, exc)
            raise SubscriptionStoreError("Failed to extend subscription.") from exc
        return map_row_to_subscription(updated)

    def record_settlement_incident(self, *, incident: SettlementIncident) -> None:
        sql = """
            INSERT INTO public.settlement_incidents (
                id, subscription_id, user_id, action, amount,
                payment_id, payment_order_reference, payment_signature, reason, created_at
            ) VALUES (
                :id, :subscription_id, :user_id, :action, :amount,
                :payment_id, :payment_order_reference, :payment_signature, :reason, :created_at
            )
        """
        with self._engine.begin() as conn:
            conn.execute(
                text(sql),
                {
                    "id": incident.id,
                    "subscription_id": incident.subscription_id,
                    "user_id": incident.user_id,
                    "action": incident.action,
                    "amount": incident.amount,
                    "payment_id": incident.payment_id,
                    "payment_order_reference": incident.payment_order_reference,
                    "payment_signature": incident.payment_signature,
                    "reason": incident.reason,
                    "created_at": incident.created_at,
                },
            )

    def _versioned_update(self, sql: str, params: dict, *, subscription_id: str, operation: str) -> Subscription:
        try:
            with self._engine.begin() as conn:
                row = conn.execute(text(sql), params).mappings().first()
                if row is None:
                    exists = conn.execute(
                        text("SELECT 1 FROM public.subscriptions WHERE id = :subscription_id"),
                        {"subscription_id": subscription_id},
                    ).first()
        except SQLAlchemyError as exc:
            logger.error(
                "subscription_repository: %s_failed subscription=%s error=%s",
                operation,
                subscription_id,
                exc,
            )
            raise SubscriptionStoreError(f"Failed to {operation} subscription.") from exc

        if row is None:
            if exists is None:
                raise SubscriptionStoreError("Subscription no longer exists.")
            logger.warning(
                "subscription_repository: version_conflict subscription=%s expected_version=%s",
                subscription_id,
                params.get("expected_version"),
            )
            raise SubscriptionConflictError("Subscription was changed by another request.")
        return map_row_to_subscription(row)
