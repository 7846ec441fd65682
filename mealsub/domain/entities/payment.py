from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class PaymentProof:
    payment_id: str
    order_reference: str
    signature: str | None


@dataclass(frozen=True)
class PaymentSucceeded:
    proof: PaymentProof


@dataclass(frozen=True)
class PaymentCancelled:
    """The customer backed out of the payment. Not an error."""


@dataclass(frozen=True)
class PaymentFailed:
    reason: str
    retryable: bool = True


PaymentOutcome = Union[PaymentSucceeded, PaymentCancelled, PaymentFailed]
