from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PaymentCaptureRequest:
    amount: int
    reference: str
    description: str
    user_id: str
    customer_id: str | None
    idempotency_key: str
