from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Callable
from uuid import uuid4

from mealsub.application.dto.payments import PaymentCaptureRequest
from mealsub.application.dto.subscriptions import (
    NewSubscription,
    SettlementOutput,
    SubscriptionModification,
    SubscriptionPatch,
    SubscriptionSelectionInput,
)
from mealsub.application.locks import SettlementLocks, user_settlement_key
from mealsub.application.ports.address_port import AddressPort
from mealsub.application.ports.payment_capture_port import PaymentCapturePort
from mealsub.application.ports.plan_catalog_port import PlanCatalogPort
from mealsub.application.ports.subscription_store_port import (
    SettlementIncidentPort,
    SubscriptionStorePort,
)
from mealsub.domain.entities.payment import (
    PaymentCancelled,
    PaymentFailed,
    PaymentOutcome,
    PaymentProof,
)
from mealsub.domain.entities.plan import Plan
from mealsub.domain.entities.proration import ProrationResult
from mealsub.domain.entities.settlement import (
    ActionDecision,
    SettlementCharge,
    SettlementIncident,
)
from mealsub.domain.entities.subscription import Subscription
from mealsub.domain.exceptions import (
    PaymentCaptureError,
    PaymentUnresolvedError,
    SubscriptionStoreError,
    SubscriptionValidationError,
)
from mealsub.domain.services.proration import calculate_proration
from mealsub.domain.services.settlement import NO_CHARGE, plan_settlement_charge
from mealsub.domain.services.subscription_action import classify_action
from mealsub.domain.services.subscription_schedule import rescheduled_end_date
from mealsub.domain.services.subscription_status import resolve_subscription_states

from .subscription_common import select_plan, utcnow, validate_plan_selection


NEW_SUBSCRIPTION_REFERENCE = "new"
logger = logging.getLogger(__name__)


class SettleSubscriptionChangeUseCase:
    def __init__(
        self,
        *,
        plan_catalog_port: PlanCatalogPort,
        subscription_store_port: SubscriptionStorePort,
        address_port: AddressPort,
        payment_capture_port: PaymentCapturePort,
        incident_port: SettlementIncidentPort,
        locks: SettlementLocks,
        business_tz: tzinfo,
        payment_timeout_seconds: float = 300.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._plan_catalog_port = plan_catalog_port
        self._subscription_store_port = subscription_store_port
        self._address_port = address_port
        self._payment_capture_port = payment_capture_port
        self._incident_port = incident_port
        self._locks = locks
        self._business_tz = business_tz
        self._payment_timeout_seconds = payment_timeout_seconds
        self._clock = clock

    async def execute(self, command: SubscriptionSelectionInput) -> SettlementOutput:
        plan, start_date = self._validate(command)

        async with self._locks.hold(user_settlement_key(command.user_id)):
            now = self._clock()
            states = resolve_subscription_states(
                self._subscription_store_port.list_subscriptions(user_id=command.user_id),
                now=now,
                tz=self._business_tz,
            )
            decision = classify_action(
                states,
                dietary_preference=command.dietary_preference,
                plan_type=command.plan_type,
            )
            logger.info(
                "settle_subscription: classified user=%s action=%s subscription=%s status=%s diet=%s plan_type=%s",
                command.user_id,
                decision.action,
                decision.subscription.id if decision.subscription else None,
                decision.subscription_status,
                command.dietary_preference,
                command.plan_type,
            )

            if decision.action == "MODIFY" and decision.subscription is not None:
                return self._modify(command, previous=decision.subscription, start_date=start_date, now=now)

            proration = None
            if decision.action in {"UPGRADE", "RENEW"} and decision.subscription is not None:
                proration = calculate_proration(
                    previous=decision.subscription,
                    previous_status=decision.subscription_status or "",
                    selected_plan=plan,
                    selected_person_count=command.person_count,
                    now=now,
                )

            charge = plan_settlement_charge(
                action=decision.action,
                proration=proration,
                selected_plan=plan,
                person_count=command.person_count,
            )
            if charge.used_full_price_fallback:
                logger.warning(
                    "settle_subscription: proration_fallback_full_price user=%s subscription=%s action=%s "
                    "status=%s charge=%s",
                    command.user_id,
                    decision.subscription.id if decision.subscription else None,
                    decision.action,
                    decision.subscription_status,
                    charge.charge_amount,
                )

            proof = None
            if charge.charge_amount > 0:
                try:
                    outcome = await self._capture_payment(command, decision=decision, plan=plan, charge=charge)
                except PaymentUnresolvedError as exc:
                    return self._require_reconciliation(
                        command,
                        decision=decision,
                        proration=proration,
                        charge=charge,
                        proof=PaymentProof(
                            payment_id=exc.payment_id,
                            order_reference=exc.order_reference,
                            signature=None,
                        ),
                        reason=str(exc),
                        now=now,
                    )
                if isinstance(outcome, PaymentCancelled):
                    logger.info(
                        "settle_subscription: payment_cancelled user=%s subscription=%s action=%s",
                        command.user_id,
                        decision.subscription.id if decision.subscription else None,
                        decision.action,
                    )
                    return SettlementOutput(
                        state="cancelled",
                        action=decision.action,
                        subscription=decision.subscription,
                        proration=proration,
                        charge=charge,
                    )
                if isinstance(outcome, PaymentFailed):
                    logger.warning(
                        "settle_subscription: payment_failed user=%s subscription=%s action=%s reason=%s",
                        command.user_id,
                        decision.subscription.id if decision.subscription else None,
                        decision.action,
                        outcome.reason,
                    )
                    return SettlementOutput(
                        state="payment_failed",
                        action=decision.action,
                        subscription=decision.subscription,
                        proration=proration,
                        charge=charge,
                        failure_reason=outcome.reason,
                        retryable=outcome.retryable,
                    )
                proof = outcome.proof

            return self._commit(
                command,
                decision=decision,
                plan=plan,
                proration=proration,
                charge=charge,
                proof=proof,
                start_date=start_date,
                now=now,
            )

    def _validate(self, command: SubscriptionSelectionInput) -> tuple[Plan, datetime]:
        validate_plan_selection(
            dietary_preference=command.dietary_preference,
            plan_type=command.plan_type,
            person_count=command.person_count,
        )
        if command.start_date is None:
            raise SubscriptionValidationError("start_date is required.")
        if not command.time_slot or not command.time_slot.strip():
            raise SubscriptionValidationError("time_slot is required.")
        if not command.delivery_address_id:
            raise SubscriptionValidationError("delivery_address_id is required.")
        address = self._address_port.get_address(
            address_id=command.delivery_address_id,
            user_id=command.user_id,
        )
        if address is None:
            raise SubscriptionValidationError("Delivery address not found.")
        plan = select_plan(
            plan_catalog_port=self._plan_catalog_port,
            dietary_preference=command.dietary_preference,
            plan_type=command.plan_type,
        )
        return plan, command.start_date

    def _modify(
        self,
        command: SubscriptionSelectionInput,
        *,
        previous: Subscription,
        start_date: datetime,
        now: datetime,
    ) -> SettlementOutput:

        payload = SubscriptionModification(
            expected_version=previous.version,
            resume_date=start_date,
            end_date=rescheduled_end_date(subscription=previous, resume_date=start_date, now=now),
            time_slot=command.time_slot,
            delivery_address_id=command.delivery_address_id,
            person_count=command.person_count,
        )
        try:
            subscription = self._subscription_store_port.modify_subscription(
                subscription_id=previous.id,
                payload=payload,
                now=now,
            )
        except SubscriptionStoreError as exc:
            logger.error(
                "settle_subscription: modify_failed user=%s subscription=%s reason=%s",
                command.user_id,
                previous.id,
                exc,
            )
            return SettlementOutput(
                state="store_failed",
                action="MODIFY",
                subscription=previous,
                proration=None,
                charge=NO_CHARGE,
                failure_reason=str(exc),
                retryable=True,
            )

        logger.info(
            "settle_subscription: committed user=%s subscription=%s action=MODIFY",
            command.user_id,
            subscription.id,
        )
        return SettlementOutput(
            state="committed",
            action="MODIFY",
            subscription=subscription,
            proration=None,
            charge=NO_CHARGE,
        )

    async def _capture_payment(
        self,
        command: SubscriptionSelectionInput,
        *,
        decision: ActionDecision,
        plan: Plan,
        charge: SettlementCharge,
    ) -> PaymentOutcome:
        reference = decision.subscription.id if decision.subscription else NEW_SUBSCRIPTION_REFERENCE
        request = PaymentCaptureRequest(
            amount=charge.charge_amount,
            reference=reference,
            description=f"{plan.name} meal subscription ({decision.action.lower()})",
            user_id=command.user_id,
            customer_id=command.payment_customer_id,
            idempotency_key=f"{decision.action.lower()}-{reference}-{uuid4().hex}",
        )
        logger.info(
            "settle_subscription: awaiting_payment user=%s reference=%s amount=%s",
            command.user_id,
            reference,
            charge.charge_amount,
        )
        try:
            return await self._payment_capture_port.capture(
                request=request,
                timeout_seconds=self._payment_timeout_seconds,
            )
        except PaymentUnresolvedError:
            raise
        except PaymentCaptureError as exc:
            return PaymentFailed(reason=str(exc), retryable=True)

    def _commit(
        self,
        command: SubscriptionSelectionInput,
        *,
        decision: ActionDecision,
        plan: Plan,
        proration: ProrationResult | None,
        charge: SettlementCharge,
        proof: PaymentProof | None,
        start_date: datetime,
        now: datetime,
    ) -> SettlementOutput:
        if plan.price is None or plan.duration is None:
            raise SubscriptionValidationError("Selected plan has no valid price or duration.")

        try:
            if decision.subscription is None:
                subscription = self._subscription_store_port.create_subscription(
                    payload=NewSubscription(
                        user_id=command.user_id,
                        plan_type=plan.plan_type,
                        dietary_preference=plan.dietary_preference,
                        price=plan.price,
                        person_count=command.person_count,
                        meals_per_month=plan.duration,
                        start_date=start_date,
                        delivery_address_id=command.delivery_address_id,
                        time_slot=command.time_slot,
                        payment_id=proof.payment_id if proof else None,
                        payment_order_reference=proof.order_reference if proof else None,
                        payment_signature=proof.signature if proof else None,
                    ),
                    now=now,
                )
            else:
                subscription = self._subscription_store_port.patch_subscription(
                    subscription_id=decision.subscription.id,
                    payload=SubscriptionPatch(
                        expected_version=decision.subscription.version,
                        plan_type=plan.plan_type,
                        dietary_preference=plan.dietary_preference,
                        price=plan.price,
                        person_count=command.person_count,
                        meals_per_month=plan.duration,
                        start_date=start_date,
                        delivery_address_id=command.delivery_address_id,
                        time_slot=command.time_slot,
                        status="active",
                        wallet_credit_applied=charge.wallet_credit or None,
                        extra_charge_applied=charge.extra_charge or None,
                        payment_id=proof.payment_id if proof else None,
                        payment_order_reference=proof.order_reference if proof else None,
                        payment_signature=proof.signature if proof else None,
                    ),
                    now=now,
                )
        except SubscriptionStoreError as exc:
            if proof is not None:
                return self._require_reconciliation(
                    command,
                    decision=decision,
                    proration=proration,
                    charge=charge,
                    proof=proof,
                    reason=str(exc),
                    now=now,
                )
            logger.error(
                "settle_subscription: commit_failed user=%s subscription=%s action=%s reason=%s",
                command.user_id,
                decision.subscription.id if decision.subscription else None,
                decision.action,
                exc,
            )
            return SettlementOutput(
                state="store_failed",
                action=decision.action,
                subscription=decision.subscription,
                proration=proration,
                charge=charge,
                failure_reason=str(exc),
                retryable=True,
            )

        logger.info(
            "settle_subscription: settled user=%s subscription=%s action=%s charge=%s wallet_credit=%s",
            command.user_id,
            subscription.id,
            decision.action,
            charge.charge_amount,
            charge.wallet_credit,
        )
        return SettlementOutput(
            state="settled",
            action=decision.action,
            subscription=subscription,
            proration=proration,
            charge=charge,
            payment_proof=proof,
        )

    def _require_reconciliation(
        self,
        command: SubscriptionSelectionInput,
        *,
        decision: ActionDecision,
        proration: ProrationResult | None,
        charge: SettlementCharge,
        proof: PaymentProof,
        reason: str,
        now: datetime,
    ) -> SettlementOutput:
        previous: Subscription | None = decision.subscription
        incident = SettlementIncident(
            id=str(uuid4()),
            subscription_id=previous.id if previous else None,
            user_id=command.user_id,
            action=decision.action,
            amount=charge.charge_amount,
            payment_id=proof.payment_id,
            payment_order_reference=proof.order_reference,
            payment_signature=proof.signature,
            reason=reason,
            created_at=now,
        )
        logger.critical(
            "settle_subscription: reconciliation_required incident=%s user=%s subscription=%s action=%s "
            "amount=%s payment_id=%s order_reference=%s signature=%s reason=%s",
            incident.id,
            incident.user_id,
            incident.subscription_id,
            incident.action,
            incident.amount,
            incident.payment_id,
            incident.payment_order_reference,
            incident.payment_signature,
            reason,
        )
        try:
            self._incident_port.record_settlement_incident(incident=incident)
        except Exception:  # noqa: BLE001
            logger.exception("settle_subscription: incident_record_failed incident=%s", incident.id)

        return SettlementOutput(
            state="reconciliation_required",
            action=decision.action,
            subscription=previous,
            proration=proration,
            charge=charge,
            payment_proof=proof,
            failure_reason=reason,
            retryable=False,
            incident_id=incident.id,
        )
