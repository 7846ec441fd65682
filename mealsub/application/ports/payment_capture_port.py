from __future__ import annotations

from typing import Protocol

from mealsub.application.dto.payments import PaymentCaptureRequest
from mealsub.domain.entities.payment import PaymentOutcome


class PaymentCapturePort(Protocol):
    async def capture(self, *, request: PaymentCaptureRequest, timeout_seconds: float) -> PaymentOutcome:
        """Return a final outcome within the deadline.

        ``PaymentFailed`` is only returned when no money was taken. When the
        provider state cannot be confirmed, raise ``PaymentUnresolvedError``.
        """
        ...
