from __future__ import annotations


class DomainError(Exception):
    """Base for domain errors."""


class SubscriptionValidationError(DomainError):
    """Invalid address, date, person count or plan selection."""


class PlanNotFoundError(SubscriptionValidationError):
    """Selected plan is not offered for the dietary preference."""


class SubscriptionNotFoundError(DomainError):
    """Subscription does not exist."""


class SubscriptionBusyError(DomainError):
    """Another request is already settling this subscription."""


class SubscriptionStoreError(DomainError):
    """Subscription store rejected or failed a write."""


class SubscriptionConflictError(SubscriptionStoreError):
    """Subscription changed since it was read (version mismatch)."""


class PaymentCaptureError(DomainError):
    """Payment provider could not be reached or returned garbage."""


class PaymentUnresolvedError(PaymentCaptureError):
    """Money may have moved but the final payment state is unknown."""

    def __init__(self, message: str, *, payment_id: str, order_reference: str):
        super().__init__(message)
        self.payment_id = payment_id
        self.order_reference = order_reference
