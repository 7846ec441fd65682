from __future__ import annotations

import asyncio
import logging

import stripe

from mealsub.application.dto.payments import PaymentCaptureRequest
from mealsub.application.ports.payment_capture_port import PaymentCapturePort
from mealsub.domain.entities.payment import (
    PaymentCancelled,
    PaymentFailed,
    PaymentOutcome,
    PaymentProof,
    PaymentSucceeded,
)
from mealsub.domain.exceptions import PaymentCaptureError, PaymentUnresolvedError


logger = logging.getLogger(__name__)

_PENDING_STATUSES = {"processing", "requires_action", "requires_confirmation", "requires_capture"}


class StripePaymentCaptureClient(PaymentCapturePort):
    """Charges the customer's saved card with an off-session PaymentIntent.

    The intent is confirmed on creation and then polled until Stripe reports a
    terminal status. A customer who abandons 3-D Secure ends up with a
    ``canceled`` intent, which is reported as a cancellation, not a failure.

    When the deadline passes the intent is cancelled and read back; a timeout
    is only reported as a failure once Stripe confirms the cancellation.
    """

    def __init__(
        self,
        *,
        secret_key: str,
        currency: str,
        poll_interval_seconds: float = 2.0,
        max_network_retries: int = 2,
    ):
        stripe.api_key = secret_key
        # Network retries reuse the request's idempotency key.
        stripe.max_network_retries = max_network_retries
        self._currency = currency
        self._poll_interval_seconds = poll_interval_seconds

    async def capture(self, *, request: PaymentCaptureRequest, timeout_seconds: float) -> PaymentOutcome:
        if not request.customer_id:
            return PaymentFailed(reason="Customer has no saved payment method.", retryable=False)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds

        payment_method = await asyncio.to_thread(self._default_payment_method, request.customer_id)
        if not payment_method:
            return PaymentFailed(reason="Customer has no default payment method.", retryable=False)

        try:
            intent = await asyncio.to_thread(self._create_intent, request, payment_method)
        except stripe.CardError as exc:
            return PaymentFailed(reason=exc.user_message or "Card was declined.", retryable=True)

        intent_id = str(intent["id"])
        while True:
            outcome = _outcome_for(intent, request=request)
            if outcome is not None:
                logger.info(
                    "stripe_payment: intent_finished id=%s status=%s reference=%s",
                    intent_id,
                    intent.get("status"),
                    request.reference,
                )
                return outcome

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(
                    "stripe_payment: deadline_exceeded id=%s status=%s reference=%s",
                    intent_id,
                    intent.get("status"),
                    request.reference,
                )
                return await asyncio.to_thread(self._abandon_intent, intent_id, request)

            await asyncio.sleep(min(self._poll_interval_seconds, remaining))
            try:
                intent = await asyncio.to_thread(self._retrieve_intent, intent_id)
            except stripe.StripeError as exc:
                logger.warning("stripe_payment: refresh_failed id=%s error=%s", intent_id, exc)

    def _default_payment_method(self, customer_id: str) -> str | None:
        try:
            customer = stripe.Customer.retrieve(customer_id)
        except stripe.StripeError as exc:
            raise PaymentCaptureError("Failed to load Stripe customer.") from exc
        return (customer.get("invoice_settings") or {}).get("default_payment_method")

    def _create_intent(self, request: PaymentCaptureRequest, payment_method: str):
        try:
            return stripe.PaymentIntent.create(
                amount=request.amount,
                currency=self._currency,
                customer=request.customer_id,
                payment_method=payment_method,
                description=request.description,
                confirm=True,
                off_session=True,
                metadata={
                    "user_id": request.user_id,
                    "subscription_reference": request.reference,
                    "idempotency_key": request.idempotency_key,
                },
                idempotency_key=request.idempotency_key,
            )
        except stripe.CardError:
            raise
        except stripe.APIConnectionError as exc:
            # The request may have reached Stripe; only the idempotency key identifies it.
            raise PaymentUnresolvedError(
                "Stripe did not answer the payment request.",
                payment_id=request.idempotency_key,
                order_reference=request.reference,
            ) from exc
        except stripe.StripeError as exc:
            raise PaymentCaptureError("Failed to create Stripe payment intent.") from exc

    def _retrieve_intent(self, intent_id: str):
        return stripe.PaymentIntent.retrieve(intent_id)

    def _abandon_intent(self, intent_id: str, request: PaymentCaptureRequest) -> PaymentOutcome:
        try:
            stripe.PaymentIntent.cancel(intent_id)
        except stripe.StripeError as exc:
            logger.warning("stripe_payment: cancel_failed id=%s error=%s", intent_id, exc)

        try:
            intent = stripe.PaymentIntent.retrieve(intent_id)
        except stripe.StripeError as exc:
            raise PaymentUnresolvedError(
                "Payment state could not be confirmed after the deadline.",
                payment_id=intent_id,
                order_reference=request.reference,
            ) from exc

        status = intent.get("status")
        if status == "canceled":
            return PaymentFailed(reason="Payment capture timed out.", retryable=True)
        if status == "succeeded":
            logger.info("stripe_payment: succeeded_after_deadline id=%s reference=%s", intent_id, request.reference)
            return PaymentSucceeded(proof=_proof_for(intent, request=request))
        raise PaymentUnresolvedError(
            f"Payment intent is still {status} after the deadline.",
            payment_id=intent_id,
            order_reference=request.reference,
        )


def _proof_for(intent, *, request: PaymentCaptureRequest) -> PaymentProof:
    return PaymentProof(
        payment_id=str(intent["id"]),
        order_reference=str(intent.get("latest_charge") or request.reference),
        signature=None,
    )


def _outcome_for(intent, *, request: PaymentCaptureRequest) -> PaymentOutcome | None:
    status = intent.get("status")
    if status == "succeeded":
        return PaymentSucceeded(proof=_proof_for(intent, request=request))
    if status == "canceled":
        return PaymentCancelled()
    if status == "requires_payment_method":
        error = intent.get("last_payment_error") or {}
        return PaymentFailed(reason=error.get("message") or "Payment method was declined.", retryable=True)
    if status in _PENDING_STATUSES:
        return None
    raise PaymentUnresolvedError(
        f"Unexpected Stripe payment intent status: {status}.",
        payment_id=str(intent["id"]),
        order_reference=request.reference,
    )
