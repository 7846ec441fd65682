from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


ChangeType = Literal["priceUp", "priceDown", "noChange", "invalidPlanData"]


@dataclass(frozen=True)
class ProrationResult:
    magnitude: int
    change_type: ChangeType
    units_consumed: int | None


INVALID_PLAN_DATA = ProrationResult(magnitude=0, change_type="invalidPlanData", units_consumed=None)
