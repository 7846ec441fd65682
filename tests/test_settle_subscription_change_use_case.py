from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from mealsub.application.dto.payments import PaymentCaptureRequest
from mealsub.application.dto.subscriptions import (
    NewSubscription,
    SubscriptionModification,
    SubscriptionPatch,
    SubscriptionSelectionInput,
)
from mealsub.application.locks import SettlementLocks, user_settlement_key
from mealsub.application.use_cases.settle_subscription_change import SettleSubscriptionChangeUseCase
from mealsub.domain.entities.payment import (
    PaymentCancelled,
    PaymentFailed,
    PaymentProof,
    PaymentSucceeded,
)
from mealsub.domain.entities.plan import Plan
from mealsub.domain.entities.settlement import SettlementIncident
from mealsub.domain.entities.subscription import Subscription
from mealsub.domain.entities.user import DeliveryAddress
from mealsub.domain.exceptions import (
    PaymentCaptureError,
    PaymentUnresolvedError,
    PlanNotFoundError,
    SubscriptionBusyError,
    SubscriptionConflictError,
    SubscriptionStoreError,
    SubscriptionValidationError,
)


NOW = datetime(2024, 5, 11, 6, 0, tzinfo=timezone.utc)
PROOF = PaymentProof(payment_id="pi_123", order_reference="ch_123", signature=None)

PLANS = [
    Plan(id="veg-basic", name="Veg Basic", plan_type="basic", dietary_preference="veg", price=2500, duration=30),
    Plan(id="veg-premium", name="Veg Premium", plan_type="premium", dietary_preference="veg", price=4000, duration=30),
    Plan(id="nonveg-basic", name="Non-Veg Basic", plan_type="basic", dietary_preference="nonveg", price=3200, duration=30),
]


def make_subscription(**overrides) -> Subscription:
    values = dict(
        id="sub-1",
        user_id="user-1",
        plan_type="basic",
        dietary_preference="veg",
        price=2500,
        person_count=1,
        meals_per_month=30,
        start_date=NOW - timedelta(days=10),
        end_date=None,
        status="active",
        delivery_address_id="addr-1",
        time_slot="12:00-13:00",
        wallet_credit_applied=None,
        extra_charge_applied=None,
        payment_id=None,
        payment_order_reference=None,
        payment_signature=None,
        version=1,
        created_at=NOW - timedelta(days=10),
        updated_at=NOW - timedelta(days=10),
    )
    values.update(overrides)
    return Subscription(**values)


class FakePlanCatalogPort:
    def __init__(self, plans: list[Plan]):
        self.plans = plans

    def list_plans(self, *, dietary_preference: str) -> list[Plan]:
        return [plan for plan in self.plans if plan.dietary_preference == dietary_preference]

    def list_all_plans(self) -> list[Plan]:
        return list(self.plans)


class FakeSubscriptionStorePort:
    def __init__(self, subscriptions: list[Subscription] | None = None):
        self.subscriptions: dict[str, Subscription] = {item.id: item for item in subscriptions or []}
        self.patches: list[tuple[str, SubscriptionPatch]] = []
        self.modifications: list[tuple[str, SubscriptionModification]] = []
        self.created: list[NewSubscription] = []
        self.fail_writes = False

    def list_subscriptions(self, *, user_id: str) -> list[Subscription]:
        return [item for item in self.subscriptions.values() if item.user_id == user_id]

    def get_subscription(self, *, subscription_id: str) -> Subscription | None:
        return self.subscriptions.get(subscription_id)

    def create_subscription(self, *, payload: NewSubscription, now: datetime) -> Subscription:
        self.created.append(payload)
        if self.fail_writes:
            raise SubscriptionStoreError("database is down")
        subscription = make_subscription(
            id=f"sub-new-{len(self.created)}",
            user_id=payload.user_id,
            plan_type=payload.plan_type,
            dietary_preference=payload.dietary_preference,
            price=payload.price,
            person_count=payload.person_count,
            meals_per_month=payload.meals_per_month,
            start_date=payload.start_date,
            payment_id=payload.payment_id,
            payment_order_reference=payload.payment_order_reference,
            created_at=now,
            updated_at=now,
        )
        self.subscriptions[subscription.id] = subscription
        return subscription

    def patch_subscription(self, *, subscription_id: str, payload: SubscriptionPatch, now: datetime) -> Subscription:
        self.patches.append((subscription_id, payload))
        if self.fail_writes:
            raise SubscriptionStoreError("database is down")
        current = self.subscriptions[subscription_id]
        if current.version != payload.expected_version:
            raise SubscriptionConflictError("version mismatch")
        updated = replace(
            current,
            plan_type=payload.plan_type,
            dietary_preference=payload.dietary_preference,
            price=payload.price,
            person_count=payload.person_count,
            meals_per_month=payload.meals_per_month,
            start_date=payload.start_date,
            end_date=None,
            status=payload.status,
            delivery_address_id=payload.delivery_address_id,
            time_slot=payload.time_slot,
            wallet_credit_applied=payload.wallet_credit_applied,
            extra_charge_applied=payload.extra_charge_applied,
            payment_id=payload.payment_id,
            payment_order_reference=payload.payment_order_reference,
            payment_signature=payload.payment_signature,
            version=current.version + 1,
            updated_at=now,
        )
        self.subscriptions[subscription_id] = updated
        return updated

    def modify_subscription(
        self,
        *,
        subscription_id: str,
        payload: SubscriptionModification,
        now: datetime,
    ) -> Subscription:
        self.modifications.append((subscription_id, payload))
        if self.fail_writes:
            raise SubscriptionStoreError("database is down")
        current = self.subscriptions[subscription_id]
        updated = replace(
            current,
            start_date=payload.resume_date,
            end_date=payload.end_date,
            time_slot=payload.time_slot,
            delivery_address_id=payload.delivery_address_id,
            person_count=payload.person_count,
            version=current.version + 1,
            updated_at=now,
        )
        self.subscriptions[subscription_id] = updated
        return updated

    def update_subscription_status(self, *, subscription_id: str, status: str, now: datetime) -> Subscription:
        raise NotImplementedError

    def extend_subscription(self, *, subscription_id: str, days: int, now: datetime) -> Subscription:
        raise NotImplementedError


class FakeAddressPort:
    def __init__(self, addresses: dict[str, str]):
        self.addresses = addresses

    def get_address(self, *, address_id: str, user_id: str) -> DeliveryAddress | None:
        if self.addresses.get(address_id) != user_id:
            return None
        return DeliveryAddress(
            id=address_id,
            user_id=user_id,
            label="Home",
            address_line="12 MG Road",
            pincode="560001",
        )


class FakePaymentCapturePort:
    def __init__(self, outcome=None, *, delay: float = 0.0, error: Exception | None = None):
        self.outcome = outcome if outcome is not None else PaymentSucceeded(proof=PROOF)
        self.delay = delay
        self.error = error
        self.requests: list[PaymentCaptureRequest] = []
        self.timeouts: list[float] = []

    async def capture(self, *, request: PaymentCaptureRequest, timeout_seconds: float):
        self.requests.append(request)
        self.timeouts.append(timeout_seconds)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.outcome


class FakeIncidentPort:
    def __init__(self, *, fail: bool = False):
        self.incidents: list[SettlementIncident] = []
        self.fail = fail

    def record_settlement_incident(self, *, incident: SettlementIncident) -> None:
        if self.fail:
            raise RuntimeError("incident table unavailable")
        self.incidents.append(incident)


def build_use_case(
    *,
    subscriptions: list[Subscription] | None = None,
    payment: FakePaymentCapturePort | None = None,
    incident_port: FakeIncidentPort | None = None,
    locks: SettlementLocks | None = None,
    timeout: float = 5.0,
):
    store = FakeSubscriptionStorePort(subscriptions)
    payment = payment or FakePaymentCapturePort()
    incident_port = incident_port or FakeIncidentPort()
    use_case = SettleSubscriptionChangeUseCase(
        plan_catalog_port=FakePlanCatalogPort(PLANS),
        subscription_store_port=store,
        address_port=FakeAddressPort({"addr-1": "user-1", "addr-2": "user-2"}),
        payment_capture_port=payment,
        incident_port=incident_port,
        locks=locks or SettlementLocks(),
        business_tz=timezone.utc,
        payment_timeout_seconds=timeout,
        clock=lambda: NOW,
    )
    return use_case, store, payment, incident_port


def make_command(**overrides) -> SubscriptionSelectionInput:
    values = dict(
        user_id="user-1",
        dietary_preference="veg",
        plan_type="premium",
        person_count=1,
        start_date=NOW + timedelta(days=1),
        time_slot="12:00-13:00",
        delivery_address_id="addr-1",
        payment_customer_id="cus_123",
    )
    values.update(overrides)
    return SubscriptionSelectionInput(**values)


def test_upgrade_charges_prorated_difference_and_patches_subscription():
    use_case, store, payment, _ = build_use_case(subscriptions=[make_subscription()])

    output = asyncio.run(use_case.execute(make_command()))

    assert output.state == "settled"
    assert output.action == "UPGRADE"
    assert output.proration.magnitude == 1000
    assert output.proration.units_consumed == 10
    assert len(payment.requests) == 1
    request = payment.requests[0]
    assert request.amount == 1000
    assert request.reference == "sub-1"
    assert request.customer_id == "cus_123"
    assert "Veg Premium" in request.description

    subscription_id, patch = store.patches[0]
    assert subscription_id == "sub-1"
    assert patch.expected_version == 1
    assert patch.extra_charge_applied == 1000
    assert patch.wallet_credit_applied is None
    assert patch.payment_id == "pi_123"
    assert output.subscription.plan_type == "premium"
    assert output.subscription.version == 2
    assert output.payment_proof == PROOF


def test_cancelled_payment_leaves_previous_subscription_untouched():
    original = make_subscription()
    use_case, store, payment, incidents = build_use_case(
        subscriptions=[original],
        payment=FakePaymentCapturePort(PaymentCancelled()),
    )

    output = asyncio.run(use_case.execute(make_command()))

    assert output.state == "cancelled"
    assert output.subscription == original
    assert store.subscriptions["sub-1"] == original
    assert store.patches == []
    assert incidents.incidents == []
    assert len(payment.requests) == 1


def test_failed_payment_is_retryable_and_mutates_nothing():
    original = make_subscription()
    use_case, store, _, _ = build_use_case(
        subscriptions=[original],
        payment=FakePaymentCapturePort(PaymentFailed(reason="Card declined.")),
    )

    output = asyncio.run(use_case.execute(make_command()))

    assert output.state == "payment_failed"
    assert output.retryable is True
    assert output.failure_reason == "Card declined."
    assert store.subscriptions["sub-1"] == original
    assert store.patches == []


def test_payment_deadline_is_handed_to_the_payment_provider():
    use_case, _, payment, _ = build_use_case(subscriptions=[make_subscription()], timeout=42.0)

    asyncio.run(use_case.execute(make_command()))

    assert payment.timeouts == [42.0]


def test_confirmed_timeout_is_reported_as_retryable_failure():
    use_case, store, _, incidents = build_use_case(
        subscriptions=[make_subscription()],
        payment=FakePaymentCapturePort(PaymentFailed(reason="Payment capture timed out.", retryable=True)),
    )

    output = asyncio.run(use_case.execute(make_command()))

    assert output.state == "payment_failed"
    assert output.retryable is True
    assert "timed out" in output.failure_reason
    assert store.patches == []
    assert incidents.incidents == []


def test_unconfirmed_payment_state_requires_reconciliation(caplog):
    original = make_subscription()
    use_case, store, _, incidents = build_use_case(
        subscriptions=[original],
        payment=FakePaymentCapturePort(
            error=PaymentUnresolvedError(
                "Payment intent is still processing after the deadline.",
                payment_id="pi_late",
                order_reference="sub-1",
            )
        ),
    )

    with caplog.at_level(logging.CRITICAL):
        output = asyncio.run(use_case.execute(make_command()))

    assert output.state == "reconciliation_required"
    assert output.retryable is False
    assert output.payment_proof == PaymentProof(payment_id="pi_late", order_reference="sub-1", signature=None)
    assert store.patches == []
    assert store.subscriptions["sub-1"] == original
    assert len(incidents.incidents) == 1
    assert incidents.incidents[0].payment_id == "pi_late"
    assert output.incident_id == incidents.incidents[0].id
    assert any("pi_late" in record.getMessage() for record in caplog.records if record.levelno == logging.CRITICAL)


def test_payment_provider_error_is_reported_as_failure():
    use_case, store, _, _ = build_use_case(
        subscriptions=[make_subscription()],
        payment=FakePaymentCapturePort(error=PaymentCaptureError("Stripe is unreachable.")),
    )

    output = asyncio.run(use_case.execute(make_command()))

    assert output.state == "payment_failed"
    assert output.failure_reason == "Stripe is unreachable."
    assert store.patches == []


def test_downgrade_credits_wallet_without_calling_payment():
    use_case, store, payment, _ = build_use_case(
        subscriptions=[make_subscription(plan_type="premium", price=4000)],
    )

    output = asyncio.run(use_case.execute(make_command(plan_type="basic")))

    assert output.state == "settled"
    assert output.charge.wallet_credit == 1000
    assert output.charge.charge_amount == 0
    assert payment.requests == []
    _, patch = store.patches[0]
    assert patch.wallet_credit_applied == 1000
    assert patch.extra_charge_applied is None
    assert patch.payment_id is None


def test_store_failure_after_captured_payment_requires_reconciliation(caplog):
    use_case, store, _, incidents = build_use_case(subscriptions=[make_subscription()])
    store.fail_writes = True

    with caplog.at_level(logging.CRITICAL):
        output = asyncio.run(use_case.execute(make_command()))

    assert output.state == "reconciliation_required"
    assert output.payment_proof == PROOF
    assert output.retryable is False
    assert len(incidents.incidents) == 1
    incident = incidents.incidents[0]
    assert incident.id == output.incident_id
    assert incident.payment_id == "pi_123"
    assert incident.subscription_id == "sub-1"
    assert incident.amount == 1000
    critical = [record for record in caplog.records if record.levelno == logging.CRITICAL]
    assert critical
    assert "pi_123" in critical[0].getMessage()


def test_reconciliation_is_reported_even_when_incident_cannot_be_recorded():
    use_case, store, _, _ = build_use_case(
        subscriptions=[make_subscription()],
        incident_port=FakeIncidentPort(fail=True),
    )
    store.fail_writes = True

    output = asyncio.run(use_case.execute(make_command()))

    assert output.state == "reconciliation_required"
    assert output.incident_id is not None


def test_store_failure_without_payment_is_store_failed():
    use_case, store, payment, incidents = build_use_case(
        subscriptions=[make_subscription(plan_type="premium", price=4000)],
    )
    store.fail_writes = True

    output = asyncio.run(use_case.execute(make_command(plan_type="basic")))

    assert output.state == "store_failed"
    assert output.retryable is True
    assert payment.requests == []
    assert incidents.incidents == []


class RacingPaymentCapturePort(FakePaymentCapturePort):
    """Another writer bumps the subscription version while the customer is paying."""

    store: FakeSubscriptionStorePort

    async def capture(self, *, request: PaymentCaptureRequest, timeout_seconds: float):
        outcome = await super().capture(request=request, timeout_seconds=timeout_seconds)
        self.store.subscriptions["sub-1"] = replace(self.store.subscriptions["sub-1"], version=7)
        return outcome


def test_version_conflict_after_payment_requires_reconciliation():
    payment = RacingPaymentCapturePort()
    use_case, store, _, incidents = build_use_case(subscriptions=[make_subscription()], payment=payment)
    payment.store = store

    output = asyncio.run(use_case.execute(make_command()))

    assert output.state == "reconciliation_required"
    assert len(incidents.incidents) == 1


def test_modify_reschedules_without_payment():
    use_case, store, payment, _ = build_use_case(subscriptions=[make_subscription()])
    resume = NOW + timedelta(days=4)

    output = asyncio.run(
        use_case.execute(
            make_command(plan_type="basic", start_date=resume, time_slot="19:00-20:00", person_count=2)
        )
    )

    assert output.state == "committed"
    assert output.action == "MODIFY"
    assert payment.requests == []
    assert store.patches == []
    subscription_id, modification = store.modifications[0]
    assert subscription_id == "sub-1"
    assert modification.expected_version == 1
    assert modification.resume_date == resume
    assert modification.end_date == resume + timedelta(days=29)
    assert output.subscription.time_slot == "19:00-20:00"
    assert output.subscription.person_count == 2
    assert output.subscription.price == 2500


def test_modify_with_no_remaining_days_is_rejected_before_any_write():
    use_case, store, _, _ = build_use_case(
        subscriptions=[make_subscription(start_date=NOW - timedelta(days=29))],
    )

    with pytest.raises(SubscriptionValidationError, match="No remaining days"):
        asyncio.run(use_case.execute(make_command(plan_type="basic")))

    assert store.modifications == []


def test_modify_store_failure_is_store_failed():
    use_case, store, _, _ = build_use_case(subscriptions=[make_subscription()])
    store.fail_writes = True

    output = asyncio.run(use_case.execute(make_command(plan_type="basic")))

    assert output.state == "store_failed"
    assert output.action == "MODIFY"


def test_first_purchase_charges_price_per_person_and_creates_subscription():
    use_case, store, payment, _ = build_use_case(subscriptions=[])

    output = asyncio.run(use_case.execute(make_command(plan_type="basic", person_count=2)))

    assert output.state == "settled"
    assert output.action == "NONE"
    assert payment.requests[0].amount == 5000
    assert payment.requests[0].reference == "new"
    assert len(store.created) == 1
    assert store.created[0].person_count == 2
    assert store.created[0].payment_id == "pi_123"
    assert output.subscription.id == "sub-new-1"


def test_renewal_of_completed_plan_charges_full_plan_price(caplog):
    completed = make_subscription(start_date=NOW - timedelta(days=40))
    use_case, store, payment, _ = build_use_case(subscriptions=[completed])

    with caplog.at_level(logging.WARNING):
        output = asyncio.run(use_case.execute(make_command(plan_type="basic", person_count=2)))

    assert output.action == "RENEW"
    assert output.proration.change_type == "invalidPlanData"
    assert output.charge.used_full_price_fallback is True
    assert payment.requests[0].amount == 2500
    assert store.patches[0][1].status == "active"
    assert any("proration_fallback_full_price" in record.getMessage() for record in caplog.records)


def test_unknown_address_is_rejected_before_payment():
    use_case, store, payment, _ = build_use_case(subscriptions=[make_subscription()])

    with pytest.raises(SubscriptionValidationError, match="address"):
        asyncio.run(use_case.execute(make_command(delivery_address_id="addr-2")))

    assert payment.requests == []
    assert store.patches == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"person_count": 0},
        {"person_count": 11},
        {"time_slot": "  "},
        {"start_date": None},
        {"dietary_preference": "vegan"},
        {"plan_type": "gold"},
    ],
)
def test_invalid_selection_is_rejected(overrides):
    use_case, _, payment, _ = build_use_case(subscriptions=[make_subscription()])

    with pytest.raises(SubscriptionValidationError):
        asyncio.run(use_case.execute(make_command(**overrides)))

    assert payment.requests == []


def test_plan_missing_from_catalog_is_rejected():
    use_case, _, _, _ = build_use_case(subscriptions=[])

    with pytest.raises(PlanNotFoundError):
        asyncio.run(use_case.execute(make_command(dietary_preference="nonveg", plan_type="family")))


def test_settlement_in_progress_for_same_customer_is_rejected():
    locks = SettlementLocks()
    use_case, _, payment, _ = build_use_case(subscriptions=[make_subscription()], locks=locks)

    async def scenario():
        async with locks.hold(user_settlement_key("user-1")):
            await use_case.execute(make_command())

    with pytest.raises(SubscriptionBusyError):
        asyncio.run(scenario())

    assert payment.requests == []

    output = asyncio.run(use_case.execute(make_command()))
    assert output.state == "settled"


def test_concurrent_settlements_let_only_one_through():
    use_case, store, payment, _ = build_use_case(
        subscriptions=[make_subscription()],
        payment=FakePaymentCapturePort(delay=0.05),
    )

    async def scenario():
        return await asyncio.gather(
            use_case.execute(make_command()),
            use_case.execute(make_command()),
            return_exceptions=True,
        )

    results = asyncio.run(scenario())

    busy = [item for item in results if isinstance(item, SubscriptionBusyError)]
    settled = [item for item in results if not isinstance(item, Exception)]
    assert len(busy) == 1
    assert len(settled) == 1
    assert settled[0].state == "settled"
    assert len(payment.requests) == 1
    assert len(store.patches) == 1
